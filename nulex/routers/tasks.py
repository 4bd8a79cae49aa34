"""
Tasks Router - start, submit and list micro-tasks
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.db import get_async_db
from nulex.dependencies import get_current_user
from nulex.models.user import User
from nulex.schemas import SubmitTaskRequest, TaskResponse
from nulex.services import task_service

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get("")
async def list_tasks(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    tasks = await task_service.list_available_tasks(db, limit=limit, offset=offset)
    return {"success": True, "tasks": [TaskResponse.model_validate(t) for t in tasks]}


@router.get("/mine")
async def my_tasks(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await task_service.list_user_tasks(db, user_id=user.id, limit=limit, offset=offset)
    return {
        "success": True,
        "tasks": [
            {
                "user_task_id": user_task.id,
                "task_id": task.id,
                "title": task.title,
                "reward": task.reward,
                "status": user_task.status,
                "submitted_at": user_task.submitted_at,
                "review_notes": user_task.review_notes,
            }
            for user_task, task in rows
        ],
    }


@router.post("/{task_id}/start")
async def start_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await task_service.start_task(db, task_id=task_id, user_id=user.id)


@router.post("/{task_id}/submit")
async def submit_task(
    task_id: int,
    request: SubmitTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await task_service.submit_task(
        db,
        task_id=task_id,
        user_id=user.id,
        screenshot_url=request.screenshot_url,
        answer=request.answer,
    )


@router.get("/{task_id}")
async def get_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    detail = await task_service.get_task_detail(db, task_id=task_id, user_id=user.id)
    return {"success": True, **detail, "task": TaskResponse.model_validate(detail["task"])}
