import logging

from sqlmodel import SQLModel, create_engine, Session, select
from app.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,      # checks dead connections
    pool_recycle=1800        # refresh every 30 min
)


def create_db_and_tables():
    from app.models import user, movie, payment, access, id_sequence
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def seed_admin_user(session: Session):
    from app.models.user import User
    from app.services.id_allocator import insert_with_id
    from app.utils.hash import hash_password

    if not settings.admin_password:
        logger.warning("ADMIN_PASSWORD not set, skipping admin seed")
        return None

    existing = session.exec(
        select(User).where(User.email == settings.admin_email)
    ).first()
    if existing:
        return existing

    admin = insert_with_id(
        session,
        "user",
        lambda user_id: User(
            user_id=user_id,
            name="Admin",
            email=settings.admin_email,
            password=hash_password(settings.admin_password),
            role="admin",
        ),
    )
    logger.info(f"Admin user {admin.email} created")
    return admin
