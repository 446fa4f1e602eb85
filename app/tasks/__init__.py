from app.tasks.chain_tasks import sweep_expired_chains

__all__ = [
    'sweep_expired_chains'
]
