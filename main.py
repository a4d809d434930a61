from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from crm.core.config import settings
from crm.core.exceptions import register_exception_handlers
from crm.core.kv_store import get_kv_store
from crm.core.logging_config import logger
from crm.core.rate_limit import admin_rate_limiter, api_rate_limiter
from crm.routers import admin, tenant, customer, product, inventory, order, credit, loyalty, delivery, health

# Schema is managed by Alembic migrations; no Base.metadata.create_all here

app = FastAPI(
    title="CRM API",
    version="1.0.0",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    redirect_slashes=False  # Disable automatic redirects to prevent POST data loss
)

# Configure CORS for frontend applications
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

api_limits = [Depends(api_rate_limiter)]
tenant_prefix = "/api/tenants/{tenant_id}"

# Include routers
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"], dependencies=[Depends(admin_rate_limiter)])
app.include_router(tenant.router, prefix="/api/tenants", tags=["Tenants"], dependencies=api_limits)
app.include_router(tenant.invitations_router, prefix="/api/invitations", tags=["Tenants"], dependencies=api_limits)
app.include_router(customer.router, prefix=f"{tenant_prefix}/customers", tags=["Customers"], dependencies=api_limits)
app.include_router(product.router, prefix=f"{tenant_prefix}/products", tags=["Products"], dependencies=api_limits)
app.include_router(inventory.router, prefix=f"{tenant_prefix}/inventory", tags=["Inventory"], dependencies=api_limits)
app.include_router(order.router, prefix=f"{tenant_prefix}/orders", tags=["Orders"], dependencies=api_limits)
app.include_router(credit.router, prefix=f"{tenant_prefix}/credit", tags=["Credit"], dependencies=api_limits)
app.include_router(loyalty.router, prefix=f"{tenant_prefix}/loyalty", tags=["Loyalty"], dependencies=api_limits)
app.include_router(delivery.router, prefix=f"{tenant_prefix}/deliveries", tags=["Deliveries"], dependencies=api_limits)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.on_event("startup")
def warn_missing_kv_store():
    if get_kv_store() is None:
        logger.warning("REDIS_URL is not set: rate limiting and request idempotency are disabled")
