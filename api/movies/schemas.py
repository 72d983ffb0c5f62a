from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional


class MovieIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    year: int = Field(..., ge=1, le=9999)
    description: str = ""
    poster_path: str = ""
    tmdb_id: str = ""
    overview: str = ""
    release_date: str = ""
    rating: float = Field(0.0, ge=0, le=10)

    @field_validator("title")
    @classmethod
    def title_must_be_printable(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty.")
        if not v.isprintable():
            raise ValueError("Title contains non-printable characters.")
        if "  " in v:
            v = " ".join(v.split())
        return v

    @field_validator("tmdb_id", mode="before")
    @classmethod
    def tmdb_id_as_string(cls, v: Any) -> str:
        # the frontend sends TMDB ids as numbers straight from the search results
        if v is None:
            return ""
        if isinstance(v, bool):
            raise ValueError("tmdb_id must be a string or integer.")
        if isinstance(v, int):
            return str(v)
        return v


class MovieOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    year: int
    image_path: str
    poster_path: str
    tmdb_id: str
    overview: str
    release_date: str
    rating: float
    created_at: datetime
    updated_at: datetime


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class SearchMeta(PaginationMeta):
    query: str


class MovieList(BaseModel):
    data: List[MovieOut]
    meta: PaginationMeta


class MovieSearchResult(BaseModel):
    data: List[MovieOut]
    meta: SearchMeta


class MessageResponse(BaseModel):
    message: str


class ImageUploadResponse(MessageResponse):
    path: str


class VersionResponse(BaseModel):
    version: str


class TMDBCastMember(BaseModel):
    name: str
    character: Optional[str] = None


class TMDBCrewMember(BaseModel):
    name: str
    job: Optional[str] = None


class TMDBCredits(BaseModel):
    cast: List[TMDBCastMember] = []
    crew: List[TMDBCrewMember] = []


class TMDBMovie(BaseModel):
    id: int
    title: str
    original_title: Optional[str] = None
    poster_path: Optional[str] = None
    poster_url: Optional[str] = None
    release_date: Optional[str] = None
    overview: Optional[str] = None
    vote_average: Optional[float] = None
    credits: Optional[TMDBCredits] = None


class TMDBStatus(BaseModel):
    status: str


class ErrorResponse(BaseModel):
    detail: str
    movie: Optional[Dict[str, Any]] = None
