from .models import Movie
from .repository import MovieRepository
from .schemas import MovieIn


class MovieNotFoundError(Exception):
    pass


class DuplicateTMDBIdError(Exception):
    def __init__(self, existing: Movie):
        super().__init__("A movie with this TMDB id already exists.")
        self.existing = existing


class MovieService:
    def __init__(self, repo: MovieRepository):
        self.repo = repo

    def list_movies(self, offset: int, limit: int) -> tuple[list[Movie], int]:
        return self.repo.paginate(offset, limit)

    def search_movies(self, query: str, offset: int, limit: int) -> tuple[list[Movie], int]:
        query = query.strip()
        if not query:
            return self.list_movies(offset, limit)
        return self.repo.search(query, offset, limit)

    def get_movie(self, movie_id: int) -> Movie:
        movie = self.repo.get_by_id(movie_id)
        if movie is None:
            raise MovieNotFoundError(movie_id)
        return movie

    def create_movie(self, data: MovieIn) -> Movie:
        if data.tmdb_id:
            existing = self.repo.get_by_tmdb_id(data.tmdb_id)
            if existing is not None:
                raise DuplicateTMDBIdError(existing)
        return self.repo.create(Movie(**data.model_dump()))

    def update_movie(self, movie_id: int, data: MovieIn) -> Movie:
        """
        Title, year and description are always replaced. The TMDB-derived
        fields only change when the payload carries a value, so an edit form
        that omits them does not wipe what was imported.
        """
        movie = self.get_movie(movie_id)
        movie.title = data.title
        movie.year = data.year
        movie.description = data.description
        for field in ("poster_path", "tmdb_id", "overview", "release_date", "rating"):
            value = getattr(data, field)
            if value:
                setattr(movie, field, value)
        return self.repo.save(movie)

    def delete_movie(self, movie_id: int) -> None:
        self.repo.delete(self.get_movie(movie_id))

    def set_image_path(self, movie_id: int, path: str) -> Movie:
        movie = self.get_movie(movie_id)
        movie.image_path = path
        return self.repo.save(movie)
