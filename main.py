import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database

from auth import Identity, TokenMissing, TokenRejected, TokenService, bearer_token, verify_password
from config import Settings
from database import connect, ensure_indexes, to_serializable
from schemas import LoginRequest, OrderCreate, OrderUpdate
from stores import DuplicateError, InvalidValueError, NotFoundError, OrderLedger, ProductStore, UserStore
from uploads import ImageStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    db: Database
    tokens: TokenService
    users: UserStore
    products: ProductStore
    orders: OrderLedger
    user_images: ImageStore
    product_images: ImageStore


def build_context(settings: Settings, db: Optional[Database] = None) -> AppContext:
    if db is None:
        db = connect(settings.database_url, settings.database_name)
    ensure_indexes(db)
    return AppContext(
        settings=settings,
        db=db,
        tokens=TokenService(settings.jwt_secret, ttl=settings.token_ttl),
        users=UserStore(db),
        products=ProductStore(db),
        orders=OrderLedger(db),
        user_images=ImageStore(settings.user_image_dir),
        product_images=ImageStore(settings.product_image_dir),
    )


# Dependencies

def get_context(request: Request) -> AppContext:
    return request.app.state.context


def current_identity(
    authorization: Optional[str] = Header(None),
    ctx: AppContext = Depends(get_context),
) -> Identity:
    return ctx.tokens.verify(bearer_token(authorization))


# Helpers

def _user_out(doc):
    d = to_serializable(doc)
    d.pop("password", None)
    return d


def _replace_image(background: BackgroundTasks, images: ImageStore, old: Optional[str], new: Optional[str]):
    if new and old and old != new:
        background.add_task(images.discard, old)


# Error mapping

def _detail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def on_invalid_request(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())[1:]) or "body" for e in errors)
        return _detail(400, f"Invalid or missing fields: {fields}")

    @app.exception_handler(DuplicateError)
    @app.exception_handler(InvalidValueError)
    async def on_bad_value(request: Request, exc: Exception):
        return _detail(400, str(exc))

    @app.exception_handler(NotFoundError)
    async def on_not_found(request: Request, exc: NotFoundError):
        return _detail(404, str(exc))

    @app.exception_handler(TokenMissing)
    async def on_token_missing(request: Request, exc: TokenMissing):
        return _detail(401, str(exc))

    @app.exception_handler(TokenRejected)
    async def on_token_rejected(request: Request, exc: TokenRejected):
        return _detail(403, str(exc))

    @app.exception_handler(Exception)
    async def on_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _detail(500, str(exc))


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()
    ctx = build_context(settings, db)

    app = FastAPI(title="Shop API")
    app.state.context = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    register_routes(app)
    app.mount("/", StaticFiles(directory=settings.public_dir), name="public")

    logger.info("Shop API ready (database=%s, public=%s)", ctx.db.name, settings.public_dir)
    return app


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    def read_root():
        return {"message": "Welcome to the server"}

    # Users

    @app.post("/api/users/register", status_code=201)
    def register_user(
        username: str = Form(...),
        email: str = Form(...),
        password: str = Form(...),
        profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
        ctx: AppContext = Depends(get_context),
    ):
        if not username.strip() or not email.strip() or not password:
            raise HTTPException(status_code=400, detail="Username, email and password are required")
        # reject before the upload hits the disk
        ctx.users.ensure_available(username.strip(), email.strip())
        filename = ctx.user_images.save(profile_image)
        try:
            ctx.users.create(username.strip(), email.strip(), password, profile_image=filename)
        except DuplicateError:
            if filename:
                ctx.user_images.discard(filename)
            raise
        return {"message": "User registered successfully"}

    @app.post("/api/users/login")
    def login_user(payload: LoginRequest, ctx: AppContext = Depends(get_context)):
        user = ctx.users.find_by_email(payload.email)
        if not user or not verify_password(payload.password, user.get("password")):
            logger.info("Failed login for %s", payload.email)
            raise HTTPException(status_code=400, detail="Invalid email or password")
        token = ctx.tokens.issue(user)
        return {"message": "Login successful", "token": token}

    @app.get("/api/users")
    def list_users(ctx: AppContext = Depends(get_context)):
        return [_user_out(u) for u in ctx.users.list()]

    @app.get("/api/users/{user_id}")
    def get_user(user_id: str, ctx: AppContext = Depends(get_context)):
        return _user_out(ctx.users.get(user_id))

    @app.put("/api/users/{user_id}")
    def update_user(
        user_id: str,
        background: BackgroundTasks,
        username: Optional[str] = Form(None),
        email: Optional[str] = Form(None),
        password: Optional[str] = Form(None),
        profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
        ctx: AppContext = Depends(get_context),
    ):
        current = ctx.users.get(user_id)
        # reject before the upload hits the disk
        ctx.users.ensure_available(username, email, exclude_id=current["_id"])
        filename = ctx.user_images.save(profile_image)
        try:
            updated, previous = ctx.users.update(
                user_id, username=username, email=email, password=password, profile_image=filename
            )
        except (DuplicateError, NotFoundError):
            if filename:
                ctx.user_images.discard(filename)
            raise
        _replace_image(background, ctx.user_images, previous.get("profile_image"), filename)
        return _user_out(updated)

    @app.delete("/api/users/{user_id}")
    def delete_user(user_id: str, ctx: AppContext = Depends(get_context)):
        ctx.users.delete(user_id)
        return {"message": "User deleted successfully"}

    # Products

    @app.post("/api/products", status_code=201)
    def create_product(
        name: str = Form(...),
        price: float = Form(...),
        category: str = Form(...),
        description: str = Form(...),
        image: Optional[UploadFile] = File(None),
        ctx: AppContext = Depends(get_context),
    ):
        filename = ctx.product_images.save(image)
        product = ctx.products.create(name, price, category, description, image=filename)
        return to_serializable(product)

    @app.get("/api/products")
    def list_products(query: Optional[str] = None, ctx: AppContext = Depends(get_context)):
        return [to_serializable(p) for p in ctx.products.list(query)]

    @app.get("/api/products/{product_id}")
    def get_product(product_id: str, ctx: AppContext = Depends(get_context)):
        return to_serializable(ctx.products.get(product_id))

    @app.put("/api/products/{product_id}")
    def update_product(
        product_id: str,
        background: BackgroundTasks,
        name: Optional[str] = Form(None),
        price: Optional[float] = Form(None),
        category: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        image: Optional[UploadFile] = File(None),
        ctx: AppContext = Depends(get_context),
    ):
        ctx.products.get(product_id)
        filename = ctx.product_images.save(image)
        updated, previous = ctx.products.update(
            product_id, name=name, price=price, category=category, description=description,
            image=filename,
        )
        _replace_image(background, ctx.product_images, previous.get("image"), filename)
        return to_serializable(updated)

    @app.delete("/api/products/{product_id}")
    def delete_product(product_id: str, ctx: AppContext = Depends(get_context)):
        ctx.products.delete(product_id)
        return {"message": "Product deleted successfully"}

    # Orders

    @app.post("/api/orders", status_code=201)
    def create_order(
        payload: OrderCreate,
        identity: Identity = Depends(current_identity),
        ctx: AppContext = Depends(get_context),
    ):
        order = ctx.orders.create(payload.product_id, payload.quantity, identity)
        return to_serializable(order)

    @app.get("/api/orders")
    def list_orders(identity: Identity = Depends(current_identity), ctx: AppContext = Depends(get_context)):
        return [to_serializable(o) for o in ctx.orders.list(identity)]

    @app.get("/api/orders/{order_id}")
    def get_order(order_id: str, identity: Identity = Depends(current_identity),
                  ctx: AppContext = Depends(get_context)):
        return to_serializable(ctx.orders.get(order_id, identity))

    @app.put("/api/orders/{order_id}")
    def update_order(
        order_id: str,
        payload: OrderUpdate,
        identity: Identity = Depends(current_identity),
        ctx: AppContext = Depends(get_context),
    ):
        order = ctx.orders.update(order_id, identity, quantity=payload.quantity, status=payload.status)
        return to_serializable(order)

    @app.delete("/api/orders/{order_id}")
    def delete_order(order_id: str, identity: Identity = Depends(current_identity),
                     ctx: AppContext = Depends(get_context)):
        ctx.orders.delete(order_id, identity)
        return {"message": "Order deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
