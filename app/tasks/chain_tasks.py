import logging

from app.celery_app import celery_app
from app.db.session import SessionLocal
from app.services.chain_engine import ChainEngine

logger = logging.getLogger(__name__)


@celery_app.task(name="sweep_expired_chains")
def sweep_expired_chains():
    """Periodic job (celery beat): mark overdue active chains as expired."""
    db = SessionLocal()
    try:
        expired = ChainEngine(db).sweep_expired()
        return {"status": "success", "expired": expired}
    except Exception as e:
        db.rollback()
        logger.exception("Expired chain sweep failed")
        return {"status": "error", "message": str(e)}
    finally:
        db.close()
