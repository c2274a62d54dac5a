import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from core.config import settings
from core.database import create_db_and_tables
from core.errors import SakanError
from routes.account import router as account_router
from routes.admin import router as admin_router
from routes.billing import router as billing_router
from routes.webhook import router as webhook_router
from services.payment_service import StripeGateway

load_dotenv()
logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)


# =========================================
# 🏁 Lifespan (DB + Stripe client)
# =========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    app.state.stripe_gateway = StripeGateway(settings.STRIPE_SECRET_KEY)
    logger.info("✅ SAKAN backend started (environment=%s)", settings.ENVIRONMENT)
    yield
    logger.info("✅ Application shutting down.")


# =========================================
#  ✅ FastAPI App
# =========================================
app = FastAPI(lifespan=lifespan, title="SAKAN Backend")

allowed_origins = [
    settings.FRONTEND_URL,
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================================
# ⚠️ Error envelope: {success: false, error}
# =========================================
@app.exception_handler(SakanError)
async def sakan_error_handler(request: Request, exc: SakanError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"success": False, "error": message})


# =========================================
# 📦 Routers
# =========================================
app.include_router(webhook_router)  # ✅ Stripe webhook (/webhook, /api/webhook/stripe)
app.include_router(billing_router)
app.include_router(account_router)
app.include_router(admin_router)


# =========================================
# 🩺 Health Check
# =========================================
@app.get("/health")
def health_check():
    return {"status": "ok", "message": "Backend is running"}


@app.get("/")
def read_root():
    return {"message": "Welcome to SAKAN Backend!"}
