from billing_api.routes.documents import router as documents_router
from billing_api.routes.payments import router as payments_router
from billing_api.routes.periods import router as periods_router
from billing_api.routes.sequences import router as sequences_router
from billing_api.routes.statements import router as statements_router

__all__ = [
    "documents_router",
    "payments_router",
    "periods_router",
    "sequences_router",
    "statements_router",
]
