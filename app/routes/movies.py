import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.config import settings
from app.constants.payment_status import MovieStatus
from app.database import get_session
from app.dependencies.admin import require_admin
from app.dependencies.services import get_media_store
from app.models.movie import Movie
from app.models.payment import Payment
from app.models.user import User
from app.schemas.movie_schemas import MovieAdmin, MoviePublic
from app.services.id_allocator import insert_with_id
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_movie(session: Session, movie_id: str) -> Movie:
    movie = session.exec(select(Movie).where(Movie.movie_id == movie_id)).first()
    if not movie:
        raise HTTPException(404, "Movie not found")
    return movie


def _search(query, search: Optional[str]):
    if search:
        s = f"%{search}%"
        query = query.where(
            (Movie.title.ilike(s)) | (Movie.description.ilike(s)) | (Movie.movie_id.ilike(s))
        )
    return query


# PUBLIC ROUTES

@router.get("", response_model=List[MoviePublic])
def list_movies(
    search: Optional[str] = Query(None),
    session: Session = Depends(get_session),
):
    query = _search(select(Movie).where(Movie.status == MovieStatus.published), search)
    return session.exec(query.order_by(Movie.created_at.desc())).all()


# ADMIN ROUTES

@router.get("/admin/all", response_model=List[MovieAdmin])
def list_movies_admin(
    search: Optional[str] = Query(None),
    status: Optional[MovieStatus] = Query(None),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    query = _search(select(Movie), search)
    if status:
        query = query.where(Movie.status == status)
    return session.exec(query.order_by(Movie.created_at.desc())).all()


@router.get("/{movie_id}", response_model=MoviePublic)
def get_movie(movie_id: str, session: Session = Depends(get_session)):
    movie = _get_movie(session, movie_id)
    if movie.status != MovieStatus.published:
        raise HTTPException(404, "Movie not found")
    return movie


@router.get("/{movie_id}/details", response_model=MovieAdmin)
def get_movie_details(
    movie_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return _get_movie(session, movie_id)


@router.post("", response_model=MovieAdmin, status_code=201)
def create_movie(
    title: str = Form(...),
    price: float = Form(..., gt=0),
    duration_seconds: int = Form(..., ge=0, alias="durationSeconds"),
    description: Optional[str] = Form(None),
    movie_file: UploadFile = File(..., alias="movieFile"),
    poster: Optional[UploadFile] = File(None),
    session: Session = Depends(get_session),
    media_store=Depends(get_media_store),
    admin: User = Depends(require_admin),
):
    uploaded = []
    try:
        file_key = media_store.upload_movie(movie_file, title)
        uploaded.append(file_key)

        poster_key = None
        if poster:
            poster_key = media_store.upload_poster(poster, title)
            uploaded.append(poster_key)

        movie = insert_with_id(
            session,
            "movie",
            lambda movie_id: Movie(
                movie_id=movie_id,
                title=title,
                description=description,
                duration_seconds=duration_seconds,
                price=price,
                currency=settings.default_currency,
                file_path=file_key,
                poster_path=poster_key,
                status=MovieStatus.draft,
            ),
        )
    except SQLAlchemyError:
        logger.exception(f"Creating movie {title!r} failed, rolling back uploads")
        for key in uploaded:
            media_store.delete(key)
        raise HTTPException(500, "Failed to create movie")

    logger.info(f"Movie created: {movie.movie_id}")
    return movie


@router.put("/{movie_id}", response_model=MovieAdmin)
def update_movie(
    movie_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[float] = Form(None, gt=0),
    poster: Optional[UploadFile] = File(None),
    session: Session = Depends(get_session),
    media_store=Depends(get_media_store),
    admin: User = Depends(require_admin),
):
    """
    Edit catalog fields. Existing payments and accesses keep the amount and
    expiry they were created with.
    """
    movie = _get_movie(session, movie_id)

    if title is not None:
        movie.title = title
    if description is not None:
        movie.description = description
    if price is not None:
        movie.price = price

    old_poster = None
    if poster:
        old_poster = movie.poster_path
        movie.poster_path = media_store.upload_poster(poster, movie.title)

    movie.updated_at = utcnow()
    session.add(movie)
    session.commit()
    session.refresh(movie)

    if old_poster:
        media_store.delete(old_poster)

    return movie


@router.delete("/{movie_id}")
def delete_movie(
    movie_id: str,
    session: Session = Depends(get_session),
    media_store=Depends(get_media_store),
    admin: User = Depends(require_admin),
):
    movie = _get_movie(session, movie_id)

    # purchased movies are archived: payments reference the row and live
    # accesses still stream the file
    referenced = session.exec(select(Payment.id).where(Payment.movie_id == movie.id)).first()
    if referenced is not None:
        movie.status = MovieStatus.archived
        movie.updated_at = utcnow()
        session.add(movie)
        session.commit()
        return {
            "success": True,
            "message": "Movie archived, it has purchases",
            "archived": True,
            "mediaDeletion": {"video": False, "poster": False},
        }

    file_path, poster_path = movie.file_path, movie.poster_path
    session.delete(movie)
    session.commit()

    return {
        "success": True,
        "message": "Movie deleted successfully",
        "archived": False,
        "mediaDeletion": {
            "video": media_store.delete(file_path),
            "poster": media_store.delete(poster_path) if poster_path else False,
        },
    }


@router.put("/{movie_id}/toggle-publish")
def toggle_publish(
    movie_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    movie = _get_movie(session, movie_id)

    movie.status = (
        MovieStatus.draft if movie.status == MovieStatus.published else MovieStatus.published
    )
    movie.updated_at = utcnow()
    session.add(movie)
    session.commit()
    session.refresh(movie)

    return {
        "success": True,
        "message": f"Movie {movie.status.value}",
        "status": movie.status,
    }
