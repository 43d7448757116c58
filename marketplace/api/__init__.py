# marketplace/api/__init__.py
from fastapi import FastAPI

from marketplace.api.errors import register_exception_handlers
from marketplace.api.routers import carts, checkout, cron, health, invoices, orders, payouts, wallets, webhooks


def create_app() -> FastAPI:
    app = FastAPI(title="Marketplace Checkout", version="1.0.0")
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(checkout.router)
    app.include_router(webhooks.router)
    app.include_router(orders.router)
    app.include_router(wallets.router)
    app.include_router(payouts.router)
    app.include_router(invoices.router)
    app.include_router(cron.router)
    return app
