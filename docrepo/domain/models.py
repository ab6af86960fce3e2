from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field, ConfigDict

T = TypeVar("T")

class ListOptions(BaseModel):
    """
    Caller-supplied parameters of a paginated list request.
    Bounds are applied by the pagination engine, not here, so out-of-range
    values are accepted and later reset.
    """
    model_config = ConfigDict(frozen=True)

    fields: Optional[str] = Field(None, description="Comma-joined field names to select")
    limit: int = Field(50, description="Page size, reset to 50 when outside [1, 50]")
    page: int = Field(1, description="1-based page number, reset to 1 when below 1")
    sort: Optional[str] = Field(None, description="Sort expression, defaults to the identifier")

class Page(BaseModel, Generic[T]):
    """
    Page envelope returned by list queries.
    Built fresh on every call; total_pages is consistent with total and limit
    only at construction time.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total: int = Field(..., ge=0, description="Documents matching the query before pagination")
    limit: int = Field(..., ge=1)
    page: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0, alias="totalPages")
    data: List[T] = Field(default_factory=list)

class QueryOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    sort: Optional[str] = None
    skip: Optional[int] = Field(None, ge=0)
    limit: Optional[int] = Field(None, ge=0)
    session: Optional[Any] = Field(None, description="motor ClientSession to run the read in")

class UpdateOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    upsert: bool = False
    session: Optional[Any] = None

class InsertManyOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Stop at the first failing document, as the store does by default.
    ordered: bool = True
    session: Optional[Any] = None

class PopulateOptions(BaseModel):
    """
    Describes one join: the value stored at `path` references documents of
    `collection` through `foreign_field`.
    """
    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Field holding the reference(s)")
    collection: str = Field(..., min_length=1, description="Collection the references point into")
    foreign_field: str = Field("_id", description="Field of the joined documents matched against")
    select: Optional[str] = Field(None, description="Comma-joined fields to keep on joined documents")
