import logging
from sqlalchemy.orm import Session

from ..core import security
from ..db import models

logger = logging.getLogger(__name__)


def ensure_manager_exists(session: Session, email: str, password: str) -> None:
    manager = session.query(models.User).filter_by(email=email).first()
    if manager:
        updated = False
        if not security.verify_password(password, manager.password_hash):
            manager.password_hash = security.get_password_hash(password)
            updated = True
        if manager.role != models.UserRole.manager:
            manager.role = models.UserRole.manager
            updated = True
        if updated:
            session.commit()
            logger.info("Updated default manager '%s'", email)
        else:
            logger.info("Manager '%s' already exists", email)
        return

    manager = models.User(
        email=email,
        password_hash=security.get_password_hash(password),
        first_name="Studio",
        last_name="Manager",
        role=models.UserRole.manager,
    )
    session.add(manager)
    session.commit()
    logger.info("Created default manager '%s'", email)
