import os
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

import database
from context import AppContext, get_context
from errors import register_error_handlers
from logger import configure_logging, install_http_logging
from payloads import (
    CategoryIn,
    CategoryUpdate,
    ChangePasswordRequest,
    CreateOrderRequest,
    ForgotPasswordRequest,
    LoginRequest,
    PaymentProofRequest,
    ProductIn,
    ProductUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    StoreConfigIn,
    UpdateOrderStatusRequest,
    UserUpdateRequest,
)
from rate_limit import RateLimiter, auth_rate_limit
from schemas import OrderStatus
from security import REFRESH_COOKIE, TokenService, TokenUser, current_user, require_admin
from settings import Settings, load_settings

logger = structlog.get_logger(__name__)

REFRESH_COOKIE_MAX_AGE = 7 * 24 * 60 * 60


def ok(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def create_app(settings: Optional[Settings] = None, db=None, mailer=None, uploader=None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level, json_logs=settings.is_production)

    if db is None:
        db = database.db

    app = FastAPI(title="Storefront API")
    app.state.tokens = TokenService(settings)
    app.state.auth_limiter = RateLimiter(settings.auth_rate_limit_max, settings.auth_rate_limit_window_seconds)
    app.state.ctx = None
    if db is not None:
        database.ensure_indexes(db)
        app.state.ctx = AppContext(settings, db, app.state.tokens, mailer=mailer, uploader=uploader)
    else:
        logger.warning("database.not_configured")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_http_logging(app)
    register_error_handlers(app, show_internal_errors=settings.is_development)

    def set_refresh_cookie(response: Response, token: str) -> None:
        response.set_cookie(
            REFRESH_COOKIE,
            token,
            max_age=REFRESH_COOKIE_MAX_AGE,
            httponly=True,
            secure=settings.is_production,
            samesite="strict",
        )

    @app.get("/")
    def root():
        return {"message": "Storefront API running"}

    @app.get("/health")
    def health():
        return {"status": "OK", "timestamp": datetime.utcnow().isoformat()}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
        }
        try:
            ctx = request.app.state.ctx
            if ctx is not None:
                response["database"] = "✅ Connected"
                response["collections"] = ctx.db.list_collection_names()[:10]
        except Exception as e:
            response["database"] = f"⚠️ {str(e)[:80]}"
        return response

    # Auth
    @app.post("/auth/register", status_code=201, dependencies=[Depends(auth_rate_limit)])
    def register(payload: RegisterRequest, response: Response, ctx: AppContext = Depends(get_context)):
        user, access, refresh = ctx.auth.register(payload)
        set_refresh_cookie(response, refresh)
        return ok({"user": user, "access_token": access})

    @app.post("/auth/login", dependencies=[Depends(auth_rate_limit)])
    def login(payload: LoginRequest, response: Response, ctx: AppContext = Depends(get_context)):
        user, access, refresh = ctx.auth.login(payload)
        set_refresh_cookie(response, refresh)
        return ok({"user": user, "access_token": access})

    @app.post("/auth/refresh")
    def refresh(request: Request, ctx: AppContext = Depends(get_context)):
        token = request.cookies.get(REFRESH_COOKIE)
        if not token:
            return JSONResponse(status_code=401, content={"success": False, "error": "Refresh token not provided"})
        return ok({"access_token": ctx.auth.refresh(token)})

    @app.post("/auth/logout")
    def logout(response: Response):
        response.delete_cookie(REFRESH_COOKIE)
        return ok(message="Logged out")

    @app.get("/auth/me")
    def me(user: TokenUser = Depends(current_user), ctx: AppContext = Depends(get_context)):
        return ok(ctx.auth.me(user.id))

    @app.post("/auth/forgot-password")
    def forgot_password(payload: ForgotPasswordRequest, ctx: AppContext = Depends(get_context)):
        ctx.auth.request_password_reset(payload)
        return ok(message="If the email exists you will receive a reset link")

    @app.post("/auth/reset-password")
    def reset_password(payload: ResetPasswordRequest, ctx: AppContext = Depends(get_context)):
        ctx.auth.reset_password(payload)
        return ok(message="Password updated")

    @app.post("/auth/change-password")
    def change_password(payload: ChangePasswordRequest, user: TokenUser = Depends(current_user),
                        ctx: AppContext = Depends(get_context)):
        ctx.auth.change_password(user.id, payload)
        return ok(message="Password changed")

    # Products
    @app.get("/products")
    def list_products(category: Optional[str] = None, search: Optional[str] = None,
                      min_price: Optional[float] = None, max_price: Optional[float] = None,
                      featured: Optional[bool] = None, is_active: Optional[bool] = None,
                      page: int = 1, limit: int = 12, sort: Optional[str] = None,
                      ctx: AppContext = Depends(get_context)):
        return ok(ctx.products.list(category, search, min_price, max_price, featured, is_active,
                                    page=page, limit=limit, sort=sort))

    @app.get("/products/featured")
    def featured_products(limit: int = 6, ctx: AppContext = Depends(get_context)):
        return ok(ctx.products.featured(limit))

    @app.get("/products/{product_id}")
    def get_product(product_id: str, ctx: AppContext = Depends(get_context)):
        return ok(ctx.products.get(product_id))

    @app.post("/products", status_code=201, dependencies=[Depends(require_admin)])
    def create_product(payload: ProductIn, ctx: AppContext = Depends(get_context)):
        return ok(ctx.products.create(payload))

    @app.put("/products/{product_id}", dependencies=[Depends(require_admin)])
    def update_product(product_id: str, payload: ProductUpdate, ctx: AppContext = Depends(get_context)):
        return ok(ctx.products.update(product_id, payload))

    @app.delete("/products/{product_id}", dependencies=[Depends(require_admin)])
    def delete_product(product_id: str, ctx: AppContext = Depends(get_context)):
        ctx.products.delete(product_id)
        return ok(message="Product deleted")

    # Categories
    @app.get("/categories")
    def list_categories(include_inactive: bool = False, ctx: AppContext = Depends(get_context)):
        return ok(ctx.categories.list(include_inactive))

    @app.get("/categories/list")
    def list_categories_light(ctx: AppContext = Depends(get_context)):
        return ok(ctx.categories.list_light())

    @app.get("/categories/slug/{slug}")
    def get_category_by_slug(slug: str, ctx: AppContext = Depends(get_context)):
        return ok(ctx.categories.get_by_slug(slug))

    @app.post("/categories/sync", dependencies=[Depends(require_admin)])
    def sync_categories(ctx: AppContext = Depends(get_context)):
        return ok({"created": ctx.categories.sync_from_products()})

    @app.get("/categories/{category_id}")
    def get_category(category_id: str, ctx: AppContext = Depends(get_context)):
        return ok(ctx.categories.get(category_id))

    @app.post("/categories", status_code=201, dependencies=[Depends(require_admin)])
    def create_category(payload: CategoryIn, ctx: AppContext = Depends(get_context)):
        return ok(ctx.categories.create(payload))

    @app.put("/categories/{category_id}", dependencies=[Depends(require_admin)])
    def update_category(category_id: str, payload: CategoryUpdate, ctx: AppContext = Depends(get_context)):
        return ok(ctx.categories.update(category_id, payload))

    @app.delete("/categories/{category_id}", dependencies=[Depends(require_admin)])
    def delete_category(category_id: str, ctx: AppContext = Depends(get_context)):
        ctx.categories.delete(category_id)
        return ok(message="Category deleted")

    # Orders
    @app.post("/orders", status_code=201)
    def create_order(payload: CreateOrderRequest, user: TokenUser = Depends(current_user),
                     ctx: AppContext = Depends(get_context)):
        return ok(ctx.orders.create(user.id, payload))

    @app.get("/orders/my-orders")
    def my_orders(page: int = 1, limit: int = 10, user: TokenUser = Depends(current_user),
                  ctx: AppContext = Depends(get_context)):
        return ok(ctx.orders.list_for_user(user.id, page, limit))

    @app.get("/orders/admin/all", dependencies=[Depends(require_admin)])
    def all_orders(page: int = 1, limit: int = 20, status: Optional[OrderStatus] = None,
                   ctx: AppContext = Depends(get_context)):
        return ok(ctx.orders.list_all(page, limit, status))

    @app.get("/orders/{order_id}")
    def get_order(order_id: str, user: TokenUser = Depends(current_user), ctx: AppContext = Depends(get_context)):
        return ok(ctx.orders.get(order_id, None if user.is_admin else user.id))

    @app.post("/orders/{order_id}/payment-proof")
    def payment_proof(order_id: str, payload: PaymentProofRequest, user: TokenUser = Depends(current_user),
                      ctx: AppContext = Depends(get_context)):
        return ok(ctx.orders.attach_payment_proof(order_id, user.id, payload.payment_proof))

    @app.patch("/orders/{order_id}/status", dependencies=[Depends(require_admin)])
    def update_order_status(order_id: str, payload: UpdateOrderStatusRequest,
                            ctx: AppContext = Depends(get_context)):
        return ok(ctx.orders.update_status(order_id, payload))

    # Users (admin)
    @app.get("/users", dependencies=[Depends(require_admin)])
    def list_users(search: Optional[str] = None, is_admin: Optional[bool] = None,
                   is_active: Optional[bool] = None, page: int = 1, limit: int = 20,
                   ctx: AppContext = Depends(get_context)):
        return ok(ctx.users.list(search, is_admin, is_active, page, limit))

    @app.get("/users/{user_id}", dependencies=[Depends(require_admin)])
    def get_user(user_id: str, ctx: AppContext = Depends(get_context)):
        return ok(ctx.users.get(user_id))

    @app.get("/users/{user_id}/orders", dependencies=[Depends(require_admin)])
    def get_user_orders(user_id: str, page: int = 1, limit: int = 10, ctx: AppContext = Depends(get_context)):
        return ok(ctx.users.orders_of(user_id, page, limit))

    @app.get("/users/{user_id}/stats", dependencies=[Depends(require_admin)])
    def get_user_stats(user_id: str, ctx: AppContext = Depends(get_context)):
        return ok(ctx.users.stats(user_id))

    @app.patch("/users/{user_id}")
    def update_user(user_id: str, payload: UserUpdateRequest, admin: TokenUser = Depends(require_admin),
                    ctx: AppContext = Depends(get_context)):
        return ok(ctx.users.update(user_id, admin.id, payload), message="User updated")

    # Store config
    @app.get("/store-config")
    def get_store_config(ctx: AppContext = Depends(get_context)):
        return ok(ctx.store_config.get())

    @app.put("/store-config", dependencies=[Depends(require_admin)])
    def update_store_config(payload: StoreConfigIn, ctx: AppContext = Depends(get_context)):
        return ok(ctx.store_config.update(payload))

    # Upload
    @app.post("/upload", dependencies=[Depends(current_user)])
    def upload_image(image: UploadFile = File(...), ctx: AppContext = Depends(get_context)):
        result = ctx.uploader.upload(image.file.read(), image.content_type)
        return {"success": True, **result}

    # Sitemap
    @app.get("/sitemap.xml")
    def sitemap(ctx: AppContext = Depends(get_context)):
        return Response(
            content=ctx.sitemap.generate(),
            media_type="application/xml",
            headers={"Cache-Control": "public, max-age=86400"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
