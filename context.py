from typing import Optional

from fastapi import Request

from auth_service import AuthService
from catalog import CategoryService, ProductService
from errors import AppError
from notifications import Notifier, SmtpMailer
from orders import OrderService
from security import TokenService
from settings import Settings
from sitemap import SitemapService
from store_config import StoreConfigService
from uploads import ImageUploader
from users import UserService


class AppContext:
    """Services built once per application around a single database handle."""

    def __init__(self, settings: Settings, db, tokens: Optional[TokenService] = None, mailer=None,
                 uploader: Optional[ImageUploader] = None):
        self.settings = settings
        self.db = db
        self.tokens = tokens or TokenService(settings)
        self.notifier = Notifier(mailer or SmtpMailer(settings), settings)
        self.uploader = uploader or ImageUploader(settings)

        self.categories = CategoryService(db)
        self.products = ProductService(db, self.categories)
        self.orders = OrderService(db, self.notifier, status_policy=settings.order_status_policy)
        self.auth = AuthService(
            db,
            self.tokens,
            self.notifier,
            bcrypt_rounds=settings.bcrypt_rounds,
            reset_expiry_minutes=settings.reset_token_exp_min,
        )
        self.users = UserService(db)
        self.store_config = StoreConfigService(db)
        self.sitemap = SitemapService(db, settings.site_url)


def get_context(request: Request) -> AppContext:
    ctx = request.app.state.ctx
    if ctx is None:
        raise AppError("Database not configured", 500)
    return ctx
