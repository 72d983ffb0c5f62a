import logging
import math
from typing import Any, Awaitable, Callable, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db import get_session, run_migrations
from .guardrails import RateLimitConfig, SlidingWindowRateLimiter, TTLCache
from .images import ImageStore, InvalidImageError
from .repository import MovieRepository
from .schemas import (
    ErrorResponse,
    ImageUploadResponse,
    MessageResponse,
    MovieIn,
    MovieList,
    MovieOut,
    MovieSearchResult,
    TMDBMovie,
    TMDBStatus,
    VersionResponse,
)
from .service import DuplicateTMDBIdError, MovieNotFoundError, MovieService
from .settings import settings
from .tmdb import (
    TMDBClient,
    TMDBError,
    TMDBNotFoundError,
    TMDBQueryError,
    TMDBUnavailableError,
)
from .web import router as web_router

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# response cache lifetimes for catalog pages, in seconds
LIST_TTL = 120
SEARCH_TTL = 60
DETAIL_TTL = 300

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

app = FastAPI(title="Movie Catalog API", version="1.0.0")
app.include_router(web_router)

app.state.rate_limiter = SlidingWindowRateLimiter(
    RateLimitConfig(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
)
app.state.page_cache = TTLCache(default_ttl=LIST_TTL)
app.state.tmdb_client = TMDBClient(
    api_key=settings.tmdb_api_key,
    base_url=settings.tmdb_base_url,
    image_base_url=settings.tmdb_image_base_url,
    language=settings.tmdb_language,
    search_ttl_seconds=settings.tmdb_search_ttl_seconds,
    details_ttl_seconds=settings.tmdb_details_ttl_seconds,
    timeout=settings.tmdb_timeout_seconds,
)
app.state.image_store = ImageStore(settings.upload_path, settings.max_image_bytes)


# The last registered middleware is outermost: CORS, then rate limiting, then no-store headers.
@app.middleware("http")
async def no_store_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in NO_STORE_HEADERS.items():
        response.headers[name] = value
    return response


@app.middleware("http")
async def rate_limit(request: Request, call_next):
    client_ip = request.client.host if request.client else "unknown"
    if not request.app.state.rate_limiter.allow(client_ip):
        logger.warning("Rate limit exceeded for %s on %s", client_ip, request.url.path)
        return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded. Try again later."})
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Origin",
        "Content-Type",
        "Authorization",
        "Access-Control-Request-Method",
        "Access-Control-Request-Headers",
    ],
    expose_headers=["Access-Control-Allow-Origin", "Access-Control-Allow-Methods"],
    max_age=12 * 3600,
)


@app.exception_handler(SQLAlchemyError)
async def _database_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Database error."})


@app.on_event("startup")
def _startup():
    logging.basicConfig(format=LOG_FORMAT, level=settings.log_level)
    run_migrations()
    app.state.rate_limiter.start_sweeper(settings.rate_limit_sweep_interval_seconds)


@app.on_event("shutdown")
def _shutdown():
    app.state.rate_limiter.stop_sweeper()


def get_movie_service(session: Session = Depends(get_session)) -> MovieService:
    return MovieService(MovieRepository(session))


def _page_params(page: int, limit: int) -> tuple[int, int, int]:
    if page < 1:
        page = 1
    if limit < 1:
        limit = 20
    elif limit > 100:
        limit = 100
    return page, limit, (page - 1) * limit


def _meta(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit),
    }


def _cached_page(request: Request, ttl: float, build: Callable[[], Any]) -> Any:
    cache: TTLCache = request.app.state.page_cache
    cache_key = request.url.path
    if request.url.query:
        cache_key = f"{cache_key}?{request.url.query}"

    cached, found = cache.get(cache_key)
    if found:
        return cached

    generation = cache.generation
    response = jsonable_encoder(build())
    # a write that flushed the cache while building makes this page stale
    if not cache.set(cache_key, response, ttl, generation=generation):
        logger.debug("Not caching %s, cache was flushed while building it", cache_key)
    return response


def _flush_page_cache(request: Request, reason: str) -> None:
    request.app.state.page_cache.clear()
    logger.info("Page cache flushed after %s", reason)


def _movie_or_404(service: MovieService, movie_id: int):
    try:
        return service.get_movie(movie_id)
    except MovieNotFoundError:
        raise HTTPException(status_code=404, detail="Movie not found")


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/version", response_model=VersionResponse)
def version():
    return {"version": app.version}


@app.get("/movies", response_model=MovieList)
def list_movies(
    request: Request,
    page: int = Query(1),
    limit: int = Query(20),
    service: MovieService = Depends(get_movie_service),
):
    page, limit, offset = _page_params(page, limit)

    def build():
        movies, total = service.list_movies(offset, limit)
        return {
            "data": [MovieOut.model_validate(m) for m in movies],
            "meta": _meta(page, limit, total),
        }

    return _cached_page(request, LIST_TTL, build)


@app.get("/movies/search", response_model=MovieSearchResult)
def search_movies(
    request: Request,
    q: str = Query("", max_length=500),
    page: int = Query(1),
    limit: int = Query(20),
    service: MovieService = Depends(get_movie_service),
):
    page, limit, offset = _page_params(page, limit)

    def build():
        movies, total = service.search_movies(q, offset, limit)
        return {
            "data": [MovieOut.model_validate(m) for m in movies],
            "meta": {**_meta(page, limit, total), "query": q},
        }

    return _cached_page(request, SEARCH_TTL, build)


@app.get("/movies/{movie_id}", response_model=MovieOut)
def get_movie(movie_id: int, request: Request, service: MovieService = Depends(get_movie_service)):
    return _cached_page(
        request,
        DETAIL_TTL,
        lambda: MovieOut.model_validate(_movie_or_404(service, movie_id)),
    )


@app.post("/movies", response_model=MovieOut, status_code=201, responses={409: {"model": ErrorResponse}})
def create_movie(req: MovieIn, request: Request, service: MovieService = Depends(get_movie_service)):
    try:
        movie = service.create_movie(req)
    except DuplicateTMDBIdError as e:
        return JSONResponse(
            status_code=409,
            content={"detail": str(e), "movie": jsonable_encoder(MovieOut.model_validate(e.existing))},
        )
    finally:
        _flush_page_cache(request, "movie creation")
    return MovieOut.model_validate(movie)


@app.put("/movies/{movie_id}", response_model=MovieOut)
def update_movie(
    movie_id: int,
    req: MovieIn,
    request: Request,
    service: MovieService = Depends(get_movie_service),
):
    try:
        return MovieOut.model_validate(service.update_movie(movie_id, req))
    except MovieNotFoundError:
        raise HTTPException(status_code=404, detail="Movie not found")
    finally:
        _flush_page_cache(request, f"update of movie {movie_id}")


@app.delete("/movies/{movie_id}", response_model=MessageResponse)
def delete_movie(movie_id: int, request: Request, service: MovieService = Depends(get_movie_service)):
    try:
        service.delete_movie(movie_id)
    except MovieNotFoundError:
        raise HTTPException(status_code=404, detail="Movie not found")
    finally:
        _flush_page_cache(request, f"deletion of movie {movie_id}")
    return {"message": "Movie deleted successfully"}


@app.post("/movies/{movie_id}/image", response_model=ImageUploadResponse)
def upload_image(
    movie_id: int,
    request: Request,
    image: Optional[UploadFile] = File(None),
    service: MovieService = Depends(get_movie_service),
):
    store: ImageStore = request.app.state.image_store
    try:
        _movie_or_404(service, movie_id)
        if image is None:
            raise HTTPException(status_code=400, detail="No image file provided")

        try:
            # one byte past the limit is enough for validate() to reject it
            path = store.save(image.filename or "", image.file.read(store.max_bytes + 1))
        except InvalidImageError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except OSError:
            logger.exception("Failed to save image for movie %s", movie_id)
            raise HTTPException(status_code=500, detail="Failed to save image")

        try:
            service.set_image_path(movie_id, path)
        except SQLAlchemyError:
            logger.exception("Failed to store image path for movie %s", movie_id)
            store.remove(path)
            raise HTTPException(status_code=500, detail="Failed to update movie with image path")
    finally:
        _flush_page_cache(request, f"image upload for movie {movie_id}")

    return {"message": "Image uploaded successfully", "path": path}


@app.get("/movies/{movie_id}/image")
def get_image(movie_id: int, request: Request, service: MovieService = Depends(get_movie_service)):
    movie = _movie_or_404(service, movie_id)
    if not movie.image_path:
        raise HTTPException(status_code=404, detail="No image found for this movie")
    if not request.app.state.image_store.exists(movie.image_path):
        raise HTTPException(status_code=404, detail="Image file not found")
    return FileResponse(movie.image_path)


@app.delete("/movies/{movie_id}/image", response_model=MessageResponse)
def delete_image(movie_id: int, request: Request, service: MovieService = Depends(get_movie_service)):
    store: ImageStore = request.app.state.image_store
    try:
        movie = _movie_or_404(service, movie_id)
        if not movie.image_path:
            raise HTTPException(status_code=404, detail="No image found for this movie")

        try:
            store.remove(movie.image_path)
        except OSError:
            logger.exception("Failed to delete image %s", movie.image_path)
            raise HTTPException(status_code=500, detail="Failed to delete image file")

        service.set_image_path(movie_id, "")
    finally:
        _flush_page_cache(request, f"image removal for movie {movie_id}")

    return {"message": "Image deleted successfully"}


async def _call_tmdb(call: Awaitable[Any]) -> Any:
    try:
        return await call
    except TMDBQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TMDBNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TMDBUnavailableError as e:
        logger.warning("TMDB unavailable: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    except TMDBError as e:
        logger.warning("TMDB request failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    except Exception:
        logger.exception("Unexpected TMDB failure")
        raise HTTPException(status_code=500, detail="Unexpected error while contacting TMDB.")


@app.get("/tmdb/test", response_model=TMDBStatus)
async def tmdb_test(request: Request):
    try:
        await request.app.state.tmdb_client.test_connection()
    except TMDBError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "ok"}


@app.get("/tmdb/search", response_model=List[TMDBMovie])
async def tmdb_search(request: Request, query: Optional[str] = Query(None)):
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="query parameter is required")
    return await _call_tmdb(request.app.state.tmdb_client.search_movies(query.strip()))


@app.get("/tmdb/movie/{movie_id}", response_model=TMDBMovie)
async def tmdb_movie(movie_id: int, request: Request):
    return await _call_tmdb(request.app.state.tmdb_client.get_movie_details(movie_id))


@app.get("/sbom")
def sbom():
    try:
        with open(settings.sbom_path, "rb") as f:
            data = f.read()
    except OSError:
        logger.exception("Error reading SBOM file %s", settings.sbom_path)
        return JSONResponse(status_code=500, content={"detail": "Failed to read SBOM file"})
    return Response(content=data, media_type="application/json")
