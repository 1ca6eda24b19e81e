from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, schemas
from .config import (
    CORS_ORIGINS,
    SEARCH_TIMEOUT_SECONDS,
    SIMILAR_DEFAULT_LIMIT,
    SIMILAR_MAX_LIMIT,
)
from .db import SessionLocal, init_db
from .errors import BackendUnavailable, InvalidInput, NotFound
from .logging_utils import get_logger
from .search import RecipeSearch
from .store import SqlRecipeStore

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize DB once at startup
    init_db()
    logger.info("Recipe API server started")
    yield


app = FastAPI(title="Recipe Finder", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


def get_searcher():
    return RecipeSearch(
        SqlRecipeStore(SessionLocal), timeout=SEARCH_TIMEOUT_SECONDS
    )


def _error(status_code: int, error: str, message: Optional[str] = None):
    body = schemas.ErrorResponse(error=error, message=message)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(exclude_none=True)
    )


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _error(
            404, "Not found", "The requested endpoint does not exist"
        )
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    fields = ", ".join(
        ".".join(str(p) for p in err["loc"]) for err in exc.errors()
    )
    return _error(400, "Invalid request", f"Invalid value for: {fields}")


@app.exception_handler(InvalidInput)
async def invalid_input(request: Request, exc: InvalidInput):
    return _error(400, exc.error, exc.message)


@app.exception_handler(NotFound)
async def not_found(request: Request, exc: NotFound):
    return _error(404, exc.error, exc.message)


@app.exception_handler(BackendUnavailable)
async def backend_error(request: Request, exc: BackendUnavailable):
    logger.error("Backend unavailable: %s", exc)
    return _error(503, "Service unavailable", str(exc))


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return _error(500, "Internal server error", str(exc))


@app.get("/")
def health():
    return {
        "status": "ok",
        "message": "Recipe API Server",
        "version": __version__,
        "endpoints": {
            "health": "GET /",
            "list": "GET /api/recipes",
            "search": "GET /api/recipes/search?q=<query>",
            "detail": "GET /api/recipes/:id",
            "similar": "GET /api/recipes/:id/similar?limit=<n>",
        },
    }


@app.get("/api/recipes", response_model=schemas.RecipeListResponse)
async def list_recipes(
    limit: int = 100, offset: int = 0,
    searcher: RecipeSearch = Depends(get_searcher),
):
    if limit < 1 or limit > 1000:
        raise InvalidInput(
            "Invalid limit parameter", "Limit must be between 1 and 1000"
        )
    if offset < 0:
        raise InvalidInput(
            "Invalid offset parameter", "Offset must be 0 or greater"
        )
    total, recipes = await searcher.list_recipes(limit, offset)
    return schemas.RecipeListResponse(
        total=total,
        count=len(recipes),
        limit=limit,
        offset=offset,
        has_more=offset + len(recipes) < total,
        data=recipes,
    )


@app.get("/api/recipes/search", response_model=schemas.SearchResponse)
async def search_recipes(
    q: Optional[str] = None, query: Optional[str] = None,
    searcher: RecipeSearch = Depends(get_searcher),
):
    raw = q or query or ""
    # blank queries never reach the search core
    if not raw.strip():
        raise InvalidInput(
            "Query parameter is required",
            "Please provide a search query using ?q=<search_term>",
        )
    results = await searcher.search(raw)
    return schemas.SearchResponse(
        query=raw.strip(), count=len(results), data=results
    )


@app.get(
    "/api/recipes/{recipe_id}", response_model=schemas.RecipeDetailResponse
)
async def recipe_detail(
    recipe_id: int, searcher: RecipeSearch = Depends(get_searcher)
):
    recipe = await searcher.get_recipe(recipe_id)
    if recipe is None:
        raise NotFound("Recipe not found", f"No recipe with id {recipe_id}")
    return schemas.RecipeDetailResponse(data=recipe)


@app.get(
    "/api/recipes/{recipe_id}/similar", response_model=schemas.SimilarResponse
)
async def similar_recipes(
    recipe_id: int, limit: int = SIMILAR_DEFAULT_LIMIT,
    searcher: RecipeSearch = Depends(get_searcher),
):
    if limit < 1 or limit > SIMILAR_MAX_LIMIT:
        raise InvalidInput(
            "Invalid limit parameter",
            f"Limit must be between 1 and {SIMILAR_MAX_LIMIT}",
        )
    neighbours = await searcher.similar_to(recipe_id, limit)
    return schemas.SimilarResponse(
        recipe_id=recipe_id, count=len(neighbours), data=neighbours
    )
