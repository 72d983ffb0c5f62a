from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from .models import Movie


class MovieRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, movie_id: int) -> Movie | None:
        return self.session.get(Movie, movie_id)

    def get_by_tmdb_id(self, tmdb_id: str) -> Movie | None:
        return self.session.scalars(select(Movie).where(Movie.tmdb_id == tmdb_id).limit(1)).first()

    def create(self, movie: Movie) -> Movie:
        self.session.add(movie)
        self.session.commit()
        self.session.refresh(movie)
        return movie

    def save(self, movie: Movie) -> Movie:
        self.session.add(movie)
        self.session.commit()
        self.session.refresh(movie)
        return movie

    def delete(self, movie: Movie) -> None:
        self.session.delete(movie)
        self.session.commit()

    def _page(self, stmt, offset: int, limit: int) -> tuple[list[Movie], int]:
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = self.session.scalars(stmt.order_by(Movie.title, Movie.id).offset(offset).limit(limit))
        return list(rows), int(total)

    def paginate(self, offset: int, limit: int) -> tuple[list[Movie], int]:
        return self._page(select(Movie), offset, limit)

    def search(self, query: str, offset: int, limit: int) -> tuple[list[Movie], int]:
        pattern = f"%{query}%"
        stmt = select(Movie).where(
            or_(
                Movie.title.ilike(pattern),
                Movie.description.ilike(pattern),
                Movie.overview.ilike(pattern),
            )
        )
        return self._page(stmt, offset, limit)
