"""NULEX rewards platform: ledger, tasks, referrals, package settlement and withdrawals."""
