import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

import budgets
import categories
import config
import database
import notifications
import reports
import transactions
from database import create_document, get_db
from schemas import User as UserSchema
from security import create_access_token, get_current_user, get_password_hash, get_user_by_email, verify_password

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ----------------------
# App & CORS
# ----------------------
app = FastAPI(title="Finance Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------
# Error handlers
# ----------------------
def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": _field_name(e["loc"]), "message": e["msg"]} for e in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation failed", "errors": errors},
    )


@app.exception_handler(PyMongoError)
async def database_exception_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


# ----------------------
# Auth Endpoints
# ----------------------
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: Optional[str] = None


@app.post("/auth/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if get_user_by_email(db, email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user_doc = UserSchema(email=email, password_hash=get_password_hash(payload.password), name=payload.name)
    user_id = create_document(db, "user", user_doc)
    categories.provision_default_categories(db, user_id)
    logger.info("Registered user %s", user_id)

    return Token(access_token=create_access_token({"sub": user_id}))


@app.post("/auth/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Database = Depends(get_db)):
    user = get_user_by_email(db, form_data.username)
    if not user:
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    if not verify_password(form_data.password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Incorrect email or password")

    return Token(access_token=create_access_token({"sub": str(user["_id"])}))


@app.get("/me")
def me(current_user: dict = Depends(get_current_user)):
    return {
        "id": str(current_user["_id"]),
        "email": current_user.get("email"),
        "name": current_user.get("name"),
        "isActive": current_user.get("is_active", True),
    }


# ----------------------
# Resources
# ----------------------
app.include_router(transactions.router)
app.include_router(categories.router)
app.include_router(budgets.router)
app.include_router(reports.router)
app.include_router(notifications.router)


# ----------------------
# Health
# ----------------------
@app.get("/")
def read_root():
    return {"message": "Finance Tracker API Running"}


@app.get("/health")
def health():
    """Report whether the database is configured and answering."""
    response = {"backend": "ok", "database": "not configured"}
    if database.db is None:
        return response
    try:
        database.db.command("ping")
        response["database"] = "ok"
    except PyMongoError as e:
        logger.warning("Database ping failed: %s", e)
        response["database"] = "unreachable"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
