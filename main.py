import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import bearer_token, issue_access_token, read_access_token
from config import get_settings
from database import SessionLocal, ping
from models import CategoryType
from periods import resolve_period
from results import ErrorKind, LedgerError, Outcome, describe_validation_error
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    CompanySettingsIn,
    CompanySettingsOut,
    LoginIn,
    SignupIn,
    TaxRequest,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
    UserOut,
)
from services import (
    CategoryService,
    CompanySettingsService,
    ReportService,
    TaxService,
    TransactionService,
    UserService,
    parse_input,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Bookkeeping API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /api/health",
    "POST /api/login",
    "POST /api/signup",
    "POST /api/transactions",
    "GET /api/transactions",
    "PUT /api/transactions/{id}",
    "DELETE /api/transactions/{id}",
    "GET /api/transactions/export.csv",
    "GET /api/categories",
    "POST /api/categories",
    "PUT /api/categories/{id}",
    "DELETE /api/categories/{id}",
    "GET /api/company-settings",
    "PUT /api/company-settings",
    "POST /api/tax/calculate",
    "GET /api/reports/summary",
    "GET /api/reports/export.csv",
]


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_identity(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Outcome[int]:
    token = bearer_token(authorization)
    user_id = read_access_token(token) if token else None
    if user_id is None:
        return Outcome.failure(ErrorKind.unauthorized, "Unauthorized")
    found = UserService(db).get(user_id)
    if not found.ok:
        if found.error.kind == ErrorKind.not_found:
            return Outcome.failure(ErrorKind.unauthorized, "Unauthorized")
        return Outcome.from_error(found.error)
    return Outcome.success(user_id)


def error_response(error: LedgerError) -> JSONResponse:
    body: dict[str, object] = {"message": error.message}
    if error.detail and settings.is_development:
        body["error"] = error.detail
    return JSONResponse(status_code=error.status_code, content=body)


def respond(outcome: Outcome, render: Callable[[object], object], status_code: int = 200):
    if not outcome.ok:
        return error_response(outcome.error)
    return JSONResponse(status_code=status_code, content=render(outcome.value))


async def read_json(request: Request) -> Outcome:
    try:
        return Outcome.success(await request.json())
    except ValueError:
        return Outcome.failure(ErrorKind.validation, "Request body must be valid JSON")


async def read_payload(request: Request, model) -> Outcome:
    body = await read_json(request)
    if not body.ok:
        return body
    return parse_input(model, body.value)


def render_transaction(txn) -> dict:
    return TransactionOut.model_validate(txn).model_dump(mode="json")


def render_category(category) -> dict:
    return CategoryOut.model_validate(category).model_dump(mode="json")


def render_user(user) -> dict:
    return UserOut.model_validate(user).model_dump(mode="json")


def render_session(message: str) -> Callable[[object], dict]:
    def render(user) -> dict:
        return {
            "message": message,
            "user": render_user(user),
            "access_token": issue_access_token(user.id),
        }

    return render


def csv_response(text: str, filename: str) -> Response:
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.on_event("startup")
def startup_event():
    logger.info(
        f"api_started: environment={settings.environment} "
        f"endpoints={len(AVAILABLE_ENDPOINTS)}"
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={
                "message": f"Route {request.method} {request.url.path} not found",
                "available_endpoints": AVAILABLE_ENDPOINTS,
            },
        )
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": describe_validation_error(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: method={request.method} path={request.url.path}")
    body: dict[str, object] = {"message": "Something went wrong!"}
    if settings.is_development:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


@app.get("/")
def index():
    return {"message": "API server is running", "endpoints": AVAILABLE_ENDPOINTS}


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        ping(db)
    except SQLAlchemyError:
        logger.exception("health_check_failed")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "timestamp": timestamp, "database": "disconnected"},
        )
    return {"status": "ok", "timestamp": timestamp, "database": "connected"}


@app.post("/api/signup")
async def signup(request: Request, db: Session = Depends(get_db)):
    payload = await read_payload(request, SignupIn)
    if not payload.ok:
        return error_response(payload.error)
    outcome = UserService(db).signup(payload.value)
    return respond(outcome, render_session("Signup successful"), status_code=201)


@app.post("/api/login")
async def login(request: Request, db: Session = Depends(get_db)):
    payload = await read_payload(request, LoginIn)
    if not payload.ok:
        return error_response(payload.error)
    outcome = UserService(db).login(payload.value)
    return respond(outcome, render_session("Login successful"))


@app.post("/api/transactions")
async def create_transaction(
    request: Request,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    payload = await read_payload(request, TransactionIn)
    if not payload.ok:
        return error_response(payload.error)
    outcome = TransactionService(db, identity.value).create(payload.value)
    return respond(outcome, render_transaction, status_code=201)


@app.get("/api/transactions")
def list_transactions(
    user_id: Optional[str] = None,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    if not user_id:
        return error_response(LedgerError(ErrorKind.validation, "user_id is required"))
    if not user_id.isdigit():
        return error_response(LedgerError(ErrorKind.validation, "user_id must be an integer"))
    if int(user_id) != identity.value:
        return error_response(
            LedgerError(ErrorKind.forbidden, "Cannot list transactions of another user")
        )
    outcome = TransactionService(db, identity.value).list_all()
    return respond(outcome, lambda rows: [render_transaction(txn) for txn in rows])


@app.get("/api/transactions/export.csv")
def export_transactions_csv(
    start: Optional[str] = None,
    end: Optional[str] = None,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    period = None
    if start or end:
        try:
            period = resolve_period(start, end)
        except ValueError as exc:
            return error_response(LedgerError(ErrorKind.validation, str(exc)))
    outcome = ReportService(db, identity.value).transactions_csv(period)
    if not outcome.ok:
        return error_response(outcome.error)
    suffix = f"_{period.start}_{period.end}" if period else ""
    return csv_response(outcome.value, f"transactions{suffix}.csv")


@app.put("/api/transactions/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    request: Request,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    payload = await read_payload(request, TransactionUpdate)
    if not payload.ok:
        return error_response(payload.error)
    outcome = TransactionService(db, identity.value).update(transaction_id, payload.value)
    return respond(outcome, render_transaction)


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    outcome = TransactionService(db, identity.value).delete(transaction_id)
    return respond(
        outcome,
        lambda snapshot: {
            "message": "Transaction deleted successfully",
            "transaction": snapshot.model_dump(mode="json"),
        },
    )


@app.get("/api/categories")
def list_categories(
    type: Optional[str] = None,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    category_type = None
    if type:
        try:
            category_type = CategoryType(type)
        except ValueError:
            return error_response(
                LedgerError(ErrorKind.validation, f"Unknown category type: {type}")
            )
    outcome = CategoryService(db, identity.value).list_all(category_type)
    return respond(outcome, lambda rows: [render_category(c) for c in rows])


@app.post("/api/categories")
async def create_category(
    request: Request,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    payload = await read_payload(request, CategoryIn)
    if not payload.ok:
        return error_response(payload.error)
    outcome = CategoryService(db, identity.value).create(payload.value)
    return respond(outcome, render_category, status_code=201)


@app.put("/api/categories/{category_id}")
async def update_category(
    category_id: int,
    request: Request,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    payload = await read_payload(request, CategoryUpdate)
    if not payload.ok:
        return error_response(payload.error)
    outcome = CategoryService(db, identity.value).update(category_id, payload.value)
    return respond(outcome, render_category)


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    outcome = CategoryService(db, identity.value).delete(category_id)
    return respond(
        outcome,
        lambda snapshot: {
            "message": "Category deleted successfully",
            "category": snapshot.model_dump(mode="json"),
        },
    )


@app.get("/api/company-settings")
def get_company_settings(
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    outcome = CompanySettingsService(db, identity.value).get()
    return respond(
        outcome, lambda row: CompanySettingsOut.model_validate(row).model_dump(mode="json")
    )


@app.put("/api/company-settings")
async def save_company_settings(
    request: Request,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    payload = await read_payload(request, CompanySettingsIn)
    if not payload.ok:
        return error_response(payload.error)
    outcome = CompanySettingsService(db, identity.value).save(payload.value)
    return respond(
        outcome, lambda row: CompanySettingsOut.model_validate(row).model_dump(mode="json")
    )


@app.post("/api/tax/calculate")
async def calculate_tax_endpoint(
    request: Request,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    payload = await read_payload(request, TaxRequest)
    if not payload.ok:
        return error_response(payload.error)
    outcome = TaxService(db, identity.value).calculate(payload.value)
    return respond(outcome, lambda result: result.to_dict())


@app.get("/api/reports/summary")
def report_summary(
    start: Optional[str] = None,
    end: Optional[str] = None,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    try:
        period = resolve_period(start, end)
    except ValueError as exc:
        return error_response(LedgerError(ErrorKind.validation, str(exc)))
    outcome = ReportService(db, identity.value).summary(period)
    return respond(outcome, lambda report: report.to_dict())


@app.get("/api/reports/export.csv")
def report_export(
    start: Optional[str] = None,
    end: Optional[str] = None,
    identity: Outcome[int] = Depends(current_identity),
    db: Session = Depends(get_db),
):
    if not identity.ok:
        return error_response(identity.error)
    try:
        period = resolve_period(start, end)
    except ValueError as exc:
        return error_response(LedgerError(ErrorKind.validation, str(exc)))
    outcome = ReportService(db, identity.value).trend_csv(period)
    if not outcome.ok:
        return error_response(outcome.error)
    return csv_response(
        outcome.value, f"financial-report-{period.start}-{period.end}.csv"
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=False)


if __name__ == "__main__":
    main()
