import os
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from pymongo.errors import PyMongoError

import auth
import bulk_upload
import catalog
import config
import database
import orders
import wizard
from errors import EStampError, ValidationFailed
from logger import get_logger
from schemas import (
    District,
    DistrictUpdate,
    OrderAdminUpdate,
    StampCategory,
    StampCategoryUpdate,
    StampProduct,
    StampProductUpdate,
    State,
    StateUpdate,
    Tehsil,
    TehsilUpdate,
    UserProfile,
)
from stamp_duty import DOCUMENT_TYPES

logger = get_logger(__name__)

app = FastAPI(title="e-Stamp Express Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------------
# Error handling
# -------------------------

@app.exception_handler(EStampError)
def estamp_error_handler(request: Request, exc: EStampError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def store_failure(action: str, exc: Exception) -> HTTPException:
    logger.error(f"Failed to {action}", exc_info=exc)
    return HTTPException(status_code=500, detail=f"Failed to {action}. Please try again.")


def log_auth_change(user: Optional[UserProfile]):
    if user:
        logger.info(f"Auth state changed: signed in as {user.uid}")
    else:
        logger.info("Auth state changed: signed out")


auth.on_auth_state_change(log_auth_change)


# -------------------------
# Health & test
# -------------------------

@app.get("/")
def read_root():
    return {"message": "e-Stamp Express Backend Running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    if database.db is not None:
        response["database"] = "✅ Connected"
        response["connection_status"] = "Connected"
        try:
            collections = database.db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            logger.error("Database health check failed", exc_info=e)
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# -------------------------
# Reference data (public)
# -------------------------

@app.get("/api/states")
def public_states(search: Optional[str] = None):
    try:
        return catalog.list_states(search)
    except PyMongoError as e:
        raise store_failure("load states", e)

@app.get("/api/districts")
def public_districts(stateId: Optional[str] = None):
    try:
        return catalog.list_districts(state_id=stateId)
    except PyMongoError as e:
        raise store_failure("load districts", e)

@app.get("/api/tehsils")
def public_tehsils(districtId: Optional[str] = None):
    try:
        return catalog.list_tehsils(district_id=districtId)
    except PyMongoError as e:
        raise store_failure("load tehsils", e)

@app.get("/api/stamp-categories")
def public_categories():
    try:
        return catalog.list_categories()
    except PyMongoError as e:
        raise store_failure("load stamp categories", e)

@app.get("/api/stamp-products")
def public_products(stateId: Optional[str] = None, categoryId: Optional[str] = None):
    try:
        return catalog.list_products(state_id=stateId, category_id=categoryId)
    except PyMongoError as e:
        raise store_failure("load stamp products", e)

@app.get("/api/document-types")
def document_types():
    return DOCUMENT_TYPES


# -------------------------
# Customer auth
# -------------------------

class SignUpInput(BaseModel):
    email: str
    password: str
    displayName: Optional[str] = None

class SignInInput(BaseModel):
    email: str
    password: str

class OtpRequestInput(BaseModel):
    phone: str

class OtpVerifyInput(BaseModel):
    phone: str
    code: str


@app.post("/api/auth/signup")
def sign_up(payload: SignUpInput):
    try:
        auth.sign_up(payload.email, payload.password, payload.displayName)
        return auth.sign_in(payload.email, payload.password)
    except PyMongoError as e:
        raise store_failure("create account", e)

@app.post("/api/auth/signin")
def sign_in(payload: SignInInput):
    try:
        return auth.sign_in(payload.email, payload.password)
    except PyMongoError as e:
        raise store_failure("sign in", e)

@app.post("/api/auth/signout")
def sign_out(x_auth_token: Optional[str] = Header(None)):
    try:
        return {"success": auth.sign_out(x_auth_token)}
    except PyMongoError as e:
        raise store_failure("sign out", e)

@app.get("/api/auth/session")
def session(user: Optional[UserProfile] = Depends(auth.optional_user)):
    return {"user": user.model_dump(by_alias=True) if user else None}

@app.post("/api/auth/otp/request")
def request_otp(payload: OtpRequestInput):
    try:
        return auth.request_otp(payload.phone)
    except PyMongoError as e:
        raise store_failure("send OTP", e)

@app.post("/api/auth/otp/verify")
def verify_otp(payload: OtpVerifyInput):
    try:
        return auth.verify_otp(payload.phone, payload.code)
    except PyMongoError as e:
        raise store_failure("verify OTP", e)


# -------------------------
# Customer account
# -------------------------

@app.get("/api/me")
def me(user: UserProfile = Depends(auth.require_user)):
    return user.model_dump(by_alias=True)

@app.get("/api/my/orders")
def my_orders(search: Optional[str] = None, user: UserProfile = Depends(auth.require_user)):
    try:
        return orders.get_user_orders(user.uid, search)
    except PyMongoError as e:
        raise store_failure("load orders", e)

@app.get("/api/my/orders/{id}")
def my_order(id: str, user: UserProfile = Depends(auth.require_user)):
    try:
        return orders.get_order_for_user(id, user.uid)
    except PyMongoError as e:
        raise store_failure("load order", e)


# -------------------------
# Checkout wizard
# -------------------------

def wizard_state(request: Request) -> wizard.WizardState:
    return wizard.WizardState.from_query(request.query_params)


@app.post("/api/wizard/select-state")
def wizard_select_state(payload: wizard.SelectStateForm):
    return wizard.select_state(payload)

@app.post("/api/wizard/select-district")
def wizard_select_district(
    payload: wizard.SelectDistrictForm,
    state: wizard.WizardState = Depends(wizard_state),
):
    return wizard.select_district(state, payload)

@app.post("/api/wizard/party-details")
def wizard_party_details(
    payload: wizard.PartyDetailsForm,
    state: wizard.WizardState = Depends(wizard_state),
):
    return wizard.submit_party_details(state, payload)

@app.get("/api/wizard/stamp-selection")
def wizard_stamp_options(state: wizard.WizardState = Depends(wizard_state)):
    try:
        return wizard.stamp_options(state)
    except PyMongoError as e:
        raise store_failure("load stamp products", e)

@app.post("/api/wizard/stamp-selection")
def wizard_select_stamp(
    payload: wizard.StampSelectionForm,
    state: wizard.WizardState = Depends(wizard_state),
):
    return wizard.select_stamp(state, payload)

@app.get("/api/wizard/checkout")
def wizard_checkout_summary(state: wizard.WizardState = Depends(wizard_state)):
    return wizard.checkout_summary(state)

@app.post("/api/wizard/checkout")
def wizard_checkout(
    payload: wizard.CheckoutForm,
    state: wizard.WizardState = Depends(wizard_state),
    user: Optional[UserProfile] = Depends(auth.optional_user),
):
    try:
        return wizard.place_order(state, payload, user.uid if user else None)
    except PyMongoError as e:
        raise store_failure("place order", e)

@app.get("/api/wizard/confirmation")
def wizard_confirmation(orderId: str):
    try:
        return wizard.confirmation(orderId)
    except PyMongoError as e:
        raise store_failure("load order", e)


# -------------------------
# Auth (Admin)
# -------------------------

class LoginInput(BaseModel):
    username: str
    password: str


@app.post("/api/admin/login")
def admin_login(payload: LoginInput):
    try:
        return auth.admin_login(payload.username, payload.password)
    except PyMongoError as e:
        raise store_failure("sign in", e)


# -------------------------
# States (admin)
# -------------------------

@app.get("/api/admin/states")
def list_states(search: Optional[str] = None, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.list_states(search)
    except PyMongoError as e:
        raise store_failure("load states", e)

@app.get("/api/admin/states/{id}")
def get_state(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.get_state(id)
    except PyMongoError as e:
        raise store_failure("load state", e)

@app.post("/api/admin/states")
def create_state(payload: State, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.create_state(payload)
    except PyMongoError as e:
        raise store_failure("add state", e)

@app.put("/api/admin/states/{id}")
def update_state(id: str, payload: StateUpdate, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.update_state(id, payload)
    except PyMongoError as e:
        raise store_failure("update state", e)

@app.delete("/api/admin/states/{id}")
def delete_state(id: str, cascade: bool = False, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.delete_state(id, cascade=cascade)
    except PyMongoError as e:
        raise store_failure("delete state", e)


# -------------------------
# Districts (admin)
# -------------------------

@app.get("/api/admin/districts")
def list_districts(
    stateId: Optional[str] = None,
    search: Optional[str] = None,
    authorized: bool = Depends(auth.require_admin),
):
    try:
        return catalog.list_districts(state_id=stateId, search=search)
    except PyMongoError as e:
        raise store_failure("load districts", e)

@app.get("/api/admin/districts/{id}")
def get_district(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.get_district(id)
    except PyMongoError as e:
        raise store_failure("load district", e)

@app.post("/api/admin/districts")
def create_district(payload: District, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.create_district(payload)
    except PyMongoError as e:
        raise store_failure("add district", e)

@app.put("/api/admin/districts/{id}")
def update_district(id: str, payload: DistrictUpdate, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.update_district(id, payload)
    except PyMongoError as e:
        raise store_failure("update district", e)

@app.delete("/api/admin/districts/{id}")
def delete_district(id: str, cascade: bool = False, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.delete_district(id, cascade=cascade)
    except PyMongoError as e:
        raise store_failure("delete district", e)


# -------------------------
# Tehsils (admin)
# -------------------------

@app.get("/api/admin/tehsils")
def list_tehsils(
    districtId: Optional[str] = None,
    stateId: Optional[str] = None,
    search: Optional[str] = None,
    authorized: bool = Depends(auth.require_admin),
):
    try:
        return catalog.list_tehsils(district_id=districtId, state_id=stateId, search=search)
    except PyMongoError as e:
        raise store_failure("load tehsils", e)

@app.get("/api/admin/tehsils/{id}")
def get_tehsil(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.get_tehsil(id)
    except PyMongoError as e:
        raise store_failure("load tehsil", e)

@app.post("/api/admin/tehsils")
def create_tehsil(payload: Tehsil, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.create_tehsil(payload)
    except PyMongoError as e:
        raise store_failure("add tehsil", e)

@app.put("/api/admin/tehsils/{id}")
def update_tehsil(id: str, payload: TehsilUpdate, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.update_tehsil(id, payload)
    except PyMongoError as e:
        raise store_failure("update tehsil", e)

@app.delete("/api/admin/tehsils/{id}")
def delete_tehsil(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.delete_tehsil(id)
    except PyMongoError as e:
        raise store_failure("delete tehsil", e)


# -------------------------
# Stamp categories (admin)
# -------------------------

@app.get("/api/admin/stamp-categories")
def list_categories(search: Optional[str] = None, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.list_categories(search)
    except PyMongoError as e:
        raise store_failure("load stamp categories", e)

@app.get("/api/admin/stamp-categories/{id}")
def get_category(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.get_category(id)
    except PyMongoError as e:
        raise store_failure("load stamp category", e)

@app.post("/api/admin/stamp-categories")
def create_category(payload: StampCategory, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.create_category(payload)
    except PyMongoError as e:
        raise store_failure("add stamp category", e)

@app.put("/api/admin/stamp-categories/{id}")
def update_category(id: str, payload: StampCategoryUpdate, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.update_category(id, payload)
    except PyMongoError as e:
        raise store_failure("update stamp category", e)

@app.delete("/api/admin/stamp-categories/{id}")
def delete_category(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.delete_category(id)
    except PyMongoError as e:
        raise store_failure("delete stamp category", e)


# -------------------------
# Stamp products (admin)
# -------------------------

@app.get("/api/admin/stamp-products")
def list_products(
    stateId: Optional[str] = None,
    categoryId: Optional[str] = None,
    search: Optional[str] = None,
    authorized: bool = Depends(auth.require_admin),
):
    try:
        return catalog.list_products(state_id=stateId, category_id=categoryId, search=search)
    except PyMongoError as e:
        raise store_failure("load stamp products", e)

@app.get("/api/admin/stamp-products/{id}")
def get_product(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.get_product(id)
    except PyMongoError as e:
        raise store_failure("load stamp product", e)

@app.post("/api/admin/stamp-products")
def create_product(payload: StampProduct, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.create_product(payload)
    except PyMongoError as e:
        raise store_failure("add stamp product", e)

@app.put("/api/admin/stamp-products/{id}")
def update_product(id: str, payload: StampProductUpdate, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.update_product(id, payload)
    except PyMongoError as e:
        raise store_failure("update stamp product", e)

@app.delete("/api/admin/stamp-products/{id}")
def delete_product(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return catalog.delete_product(id)
    except PyMongoError as e:
        raise store_failure("delete stamp product", e)


# -------------------------
# Orders & dashboard (admin)
# -------------------------

@app.get("/api/admin/orders")
def list_orders(
    search: Optional[str] = None,
    status: Optional[str] = None,
    date: str = "all",
    authorized: bool = Depends(auth.require_admin),
):
    try:
        return orders.list_orders(search=search, status=status, date_range=date)
    except PyMongoError as e:
        raise store_failure("load orders", e)

# Registered before /orders/{id} so "export" is not read as an id
@app.get("/api/admin/orders/export")
def export_orders(
    search: Optional[str] = None,
    status: Optional[str] = None,
    date: str = "all",
    authorized: bool = Depends(auth.require_admin),
):
    try:
        items = orders.list_orders(search=search, status=status, date_range=date)
    except PyMongoError as e:
        raise store_failure("export orders", e)
    return Response(
        content=orders.export_orders_csv(items),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{orders.export_filename()}"'},
    )

@app.get("/api/admin/orders/{id}")
def get_order(id: str, authorized: bool = Depends(auth.require_admin)):
    try:
        return orders.get_order(id)
    except PyMongoError as e:
        raise store_failure("load order", e)

@app.patch("/api/admin/orders/{id}")
def update_order(id: str, payload: OrderAdminUpdate, authorized: bool = Depends(auth.require_admin)):
    try:
        return orders.update_order_admin(id, payload)
    except PyMongoError as e:
        raise store_failure("update order", e)

@app.get("/api/admin/dashboard")
def dashboard(authorized: bool = Depends(auth.require_admin)):
    try:
        return orders.dashboard_stats().model_dump(by_alias=True)
    except PyMongoError as e:
        raise store_failure("load dashboard statistics", e)


# -------------------------
# Bulk upload (admin)
# -------------------------

@app.get("/api/admin/bulk-upload/{upload_type}/template")
def bulk_upload_template(upload_type: str, authorized: bool = Depends(auth.require_admin)):
    content = bulk_upload.template_csv(upload_type)
    filename = bulk_upload.UPLOAD_TEMPLATES[upload_type]["filename"]
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@app.post("/api/admin/bulk-upload/{upload_type}")
def bulk_upload_file(
    upload_type: str,
    file: UploadFile = File(...),
    authorized: bool = Depends(auth.require_admin),
):
    if not (file.filename or "").lower().endswith(".csv"):
        raise ValidationFailed("Please upload a CSV file.")
    try:
        text = file.file.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationFailed("Could not read the file. Please upload a UTF-8 encoded CSV file.")
    try:
        report = bulk_upload.import_csv(upload_type, text)
    except PyMongoError as e:
        raise store_failure("import file", e)
    return report.model_dump()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
