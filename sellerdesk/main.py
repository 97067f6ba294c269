"""SellerDesk — FastAPI application entry point.

Operator panel backend for marketplace sellers: connects stores over OAuth,
lists unanswered buyer questions, posts answers and manages the shared
quick-reply library.
"""

from contextlib import asynccontextmanager
from html import escape

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from sellerdesk.config.settings import get_settings
from sellerdesk.context import ServiceContext, build_context
from sellerdesk.errors import MarketplaceError, SellerDeskError, ValidationError
from sellerdesk.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_logger,
    request_id_var,
    setup_logging,
)

VERSION = "0.3.0"

logger = get_logger("http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    app.state.context = build_context(get_settings())
    logger.info("SellerDesk started")
    yield
    await app.state.context.close()
    logger.info("SellerDesk stopped")


app = FastAPI(
    title="SellerDesk",
    description="Answer marketplace buyer questions across connected stores",
    version=VERSION,
    lifespan=lifespan,
)


def get_context(request: Request) -> ServiceContext:
    """The process-wide context; built lazily when lifespan did not run."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        context = build_context(get_settings())
        request.app.state.context = context
    return context


@app.middleware("http")
async def request_logging(request: Request, call_next):
    rid = generate_request_id()
    request_id_var.set(rid)
    with RequestTimer() as timer:
        response = await call_next(request)
    logger.info(
        "Request handled",
        extra={"audit_data": {
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": timer.elapsed_ms,
        }},
    )
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(SellerDeskError)
async def sellerdesk_error_handler(request: Request, exc: SellerDeskError):
    content = {"success": False, "error": exc.message}
    if isinstance(exc, MarketplaceError) and exc.details is not None:
        content["details"] = exc.details
    if not isinstance(exc, ValidationError):
        logger.warning(
            "Request failed",
            extra={"audit_data": {"path": request.url.path, "error": exc.message, "status": exc.status_code}},
        )
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


# --- Store connection (OAuth) ---

@app.get("/", response_class=HTMLResponse)
async def index(ctx: ServiceContext = Depends(get_context)):
    url = escape(ctx.tokens.authorization_url())
    return f'<h2>Connect a store</h2><a href="{url}">Connect marketplace account</a>'


@app.get("/auth/callback", response_class=HTMLResponse)
async def auth_callback(code: str = "", ctx: ServiceContext = Depends(get_context)):
    if not code:
        return HTMLResponse("Missing authorization code.", status_code=400)
    try:
        await ctx.tokens.connect(code)
    except SellerDeskError as e:
        logger.warning("Store connection failed", extra={"audit_data": {"error": e.message}})
        return HTMLResponse("Authentication failed.", status_code=400)

    total = len(await ctx.registry.all())
    return (
        "<h3>Store connected!</h3>"
        f"<p>Connected stores: {total}</p>"
        '<a href="/">Connect another store</a>'
    )


# --- Questions ---

@app.get("/questions")
async def list_questions(ctx: ServiceContext = Depends(get_context)):
    """Never fails: the panel gets an empty list instead of an error."""
    try:
        return await ctx.questions.list_all()
    except Exception:
        logger.exception("Question listing failed")
        return []


@app.get("/question-history")
async def question_history(
    store_id: str = "",
    item_id: str = "",
    limit: str = "10",
    ctx: ServiceContext = Depends(get_context),
):
    if not store_id or not item_id:
        raise ValidationError("store_id and item_id are required")
    history = await ctx.questions.history(store_id, item_id, limit)
    return {"success": True, "history": history}


@app.post("/reply")
async def reply(request: Request, ctx: ServiceContext = Depends(get_context)):
    body = await _json_body(request)
    result = await ctx.questions.answer(
        body.get("store_id"), body.get("question_id"), str(body.get("text") or "")
    )
    response = {"success": True}
    if result["refreshed"]:
        response["refreshed"] = True
    return response


# --- Quick replies ---

@app.get("/quick-replies")
async def list_quick_replies(ctx: ServiceContext = Depends(get_context)):
    return {"success": True, "replies": await ctx.replies.list()}


@app.post("/quick-replies")
async def add_quick_reply(request: Request, ctx: ServiceContext = Depends(get_context)):
    body = await _json_body(request)
    replies = await ctx.replies.add(str(body.get("text") or ""))
    return {"success": True, "replies": replies}


@app.put("/quick-replies/{reply_id}")
async def edit_quick_reply(reply_id: int, request: Request, ctx: ServiceContext = Depends(get_context)):
    body = await _json_body(request)
    replies = await ctx.replies.update(reply_id, str(body.get("text") or ""))
    return {"success": True, "replies": replies}


@app.delete("/quick-replies/{reply_id}")
async def delete_quick_reply(reply_id: int, ctx: ServiceContext = Depends(get_context)):
    return {"success": True, "replies": await ctx.replies.remove(reply_id)}


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
