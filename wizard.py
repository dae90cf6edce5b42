"""
Checkout wizard state.

The checkout screens pass everything collected so far in the URL query string:

    /select-state -> /select-district -> /party-details -> /stamp-selection
    -> /checkout -> /order-confirmation

Back navigation rebuilds earlier screens from the same parameters, so key
names and key order are fixed. WizardState is the typed view of that query
string; it is the only code that knows the parameter names.
"""
import re
from typing import Literal, Mapping, Optional, Tuple
from urllib.parse import urlencode

from pydantic import Field, field_validator

import catalog
import orders
from errors import EStampError, ValidationFailed
from schemas import Document, Order
from stamp_duty import (
    DELIVERY_SURCHARGE,
    MAX_TRANSACTION_VALUE,
    PHYSICAL_DELIVERY_TYPES,
    calculate_stamp_duty,
    format_document_type,
    parse_transaction_value,
    quote,
    valid_transaction_value,
)

# Query keys in the order the screens append them
QUERY_KEYS: Tuple[str, ...] = (
    "state",
    "district",
    "tehsil",
    "firstPartyName",
    "firstPartyAddress",
    "secondPartyName",
    "secondPartyAddress",
    "documentType",
    "propertyDescription",
    "transactionValue",
    "executionDate",
    "productId",
    "deliveryType",
)

LANDING = "/"
SELECT_STATE = "/select-state"
SELECT_DISTRICT = "/select-district"
PARTY_DETAILS = "/party-details"
STAMP_SELECTION = "/stamp-selection"
CHECKOUT = "/checkout"
ORDER_CONFIRMATION = "/order-confirmation"


class WizardRedirect(EStampError):
    """The screen cannot be shown with the parameters given; go to `redirect` instead."""

    status_code = 400

    def __init__(self, message: str, redirect: str):
        super().__init__(message, code="WIZARD_INCOMPLETE", details={"redirect": redirect})
        self.redirect = redirect


class WizardState(Document):
    state: Optional[str] = None
    district: Optional[str] = None
    tehsil: Optional[str] = None
    first_party_name: Optional[str] = None
    first_party_address: Optional[str] = None
    second_party_name: Optional[str] = None
    second_party_address: Optional[str] = None
    document_type: Optional[str] = None
    property_description: Optional[str] = None
    transaction_value: Optional[str] = None
    execution_date: Optional[str] = None
    product_id: Optional[str] = None
    delivery_type: Optional[str] = Field(None, description="digital or physical")

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "WizardState":
        """Build from a query mapping; unknown keys are ignored, empty values count as missing."""
        values = {}
        for key in QUERY_KEYS:
            value = params.get(key)
            if value not in (None, ""):
                values[key] = value
        return cls.model_validate(values)

    def to_query(self) -> str:
        data = self.model_dump(by_alias=True)
        return urlencode([(key, data[key]) for key in QUERY_KEYS if data.get(key) is not None])

    def url(self, path: str) -> str:
        query = self.to_query()
        return f"{path}?{query}" if query else path

    def merge(self, **changes) -> "WizardState":
        return self.model_copy(update={k: v for k, v in changes.items() if v is not None})

    @property
    def amount(self) -> int:
        return parse_transaction_value(self.transaction_value)

    @property
    def resolved_delivery_type(self) -> str:
        return self.delivery_type or "digital"

    # -------------------------
    # Step guards
    # -------------------------

    def require_state(self):
        if not self.state:
            raise WizardRedirect("Please select a state to continue.", SELECT_STATE)

    def require_location(self):
        if not (self.state and self.district and self.tehsil):
            raise WizardRedirect("Please go back and select your location.", self.back_from_party_details())

    def require_document(self):
        if not (self.state and self.transaction_value and self.document_type):
            raise WizardRedirect("Please fill in the party and document details.", PARTY_DETAILS)
        if not valid_transaction_value(self.transaction_value):
            raise WizardRedirect("Please enter a valid transaction value.", PARTY_DETAILS)

    def require_product(self):
        self.require_document()
        if not self.product_id:
            raise WizardRedirect("Please select a stamp product to continue.", self.url(STAMP_SELECTION))

    # -------------------------
    # Back links
    # -------------------------

    def back_from_party_details(self) -> str:
        if not self.state:
            return SELECT_STATE
        return f"{SELECT_DISTRICT}?{urlencode([('state', self.state)])}"

    def back_from_stamp_selection(self) -> str:
        return self.url(PARTY_DETAILS)

    def back_from_checkout(self) -> str:
        return self.url(STAMP_SELECTION)


def confirmation_url(order_id: str) -> str:
    return f"{ORDER_CONFIRMATION}?{urlencode([('orderId', order_id)])}"


# -------------------------
# Step forms
# -------------------------

class SelectStateForm(Document):
    state: str = Field(..., min_length=1)


class SelectDistrictForm(Document):
    district: str = Field(..., min_length=1)
    tehsil: str = Field(..., min_length=1)


class PartyDetailsForm(Document):
    first_party_name: str = Field(..., min_length=2)
    first_party_address: str = Field(..., min_length=10)
    second_party_name: str = Field(..., min_length=2)
    second_party_address: str = Field(..., min_length=10)
    document_type: str = Field(..., min_length=1)
    property_description: str = Field(..., min_length=10)
    transaction_value: str = Field(..., min_length=1)
    execution_date: str = Field(..., min_length=1)

    @field_validator("transaction_value")
    @classmethod
    def check_transaction_value(cls, v: str) -> str:
        if not valid_transaction_value(v):
            raise ValueError(f"Transaction value must be a whole number between 0 and {MAX_TRANSACTION_VALUE}")
        return v


class StampSelectionForm(Document):
    product_id: Optional[str] = None
    delivery_type: Literal["digital", "physical"] = "digital"


class CheckoutForm(Document):
    email: str = ""
    phone: str = ""
    whatsapp: Optional[str] = None
    terms_accepted: bool = False
    address: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None


# -------------------------
# Step operations
# -------------------------

SAMPLE_PRODUCT_ID = "prod1"

SAMPLE_CATEGORIES = [
    {"id": "1", "name": "Judicial Stamps", "description": "For court proceedings"},
    {"id": "2", "name": "Non-Judicial Stamps", "description": "For agreements and deeds"},
    {"id": "3", "name": "Revenue Stamps", "description": "For government transactions"},
]

DELIVERY_OPTIONS = [
    {"value": "digital", "label": "Digital Delivery", "fee": 0, "deliveryTime": "instant"},
    {"value": "physical", "label": "Door Delivery", "fee": DELIVERY_SURCHARGE, "deliveryTime": "3-5 days"},
]

_PINCODE_RE = re.compile(r"^\d{6}$")


def select_state(form: SelectStateForm) -> dict:
    state = WizardState(state=form.state)
    return {"next": state.url(SELECT_DISTRICT), "back": LANDING}


def select_district(state: WizardState, form: SelectDistrictForm) -> dict:
    state.require_state()
    state = WizardState(state=state.state, district=form.district, tehsil=form.tehsil)
    return {"next": state.url(PARTY_DETAILS), "back": SELECT_STATE}


def submit_party_details(state: WizardState, form: PartyDetailsForm) -> dict:
    state.require_location()
    state = WizardState(state=state.state, district=state.district, tehsil=state.tehsil).merge(
        **form.model_dump()
    )
    return {"next": state.url(STAMP_SELECTION), "back": state.back_from_party_details()}


def _sample_product(state: WizardState, amount: int) -> dict:
    physical = state.resolved_delivery_type in PHYSICAL_DELIVERY_TYPES
    return {
        "id": SAMPLE_PRODUCT_ID,
        "stateId": state.state,
        "categoryId": "2",
        "name": "Non-Judicial E-Stamp",
        "amount": amount,
        "platformFee": 0,
        "expressFee": 0,
        "deliveryFee": DELIVERY_SURCHARGE if physical else 0,
        "deliveryTime": "3-5 days" if physical else "instant",
    }


def stamp_options(state: WizardState) -> dict:
    """Categories, products and the calculated duty for the stamp selection screen.

    When the catalog has nothing for the state, a single computed
    "Non-Judicial E-Stamp" product is offered instead.
    """
    state.require_document()
    calculated = calculate_stamp_duty(state.document_type, state.amount)
    categories = catalog.list_categories() or SAMPLE_CATEGORIES
    products = catalog.list_products(state_id=state.state) or [_sample_product(state, calculated)]
    return {
        "categories": categories,
        "products": products,
        "calculatedAmount": calculated,
        "transactionValue": state.amount,
        "deliveryOptions": DELIVERY_OPTIONS,
        "back": state.back_from_stamp_selection(),
    }


def select_stamp(state: WizardState, form: StampSelectionForm) -> dict:
    state.require_document()
    if not form.product_id:
        raise ValidationFailed("Please select a stamp product to continue.")
    state = state.merge(product_id=form.product_id, delivery_type=form.delivery_type)
    return {"next": state.url(CHECKOUT), "back": state.back_from_stamp_selection()}


def checkout_summary(state: WizardState) -> dict:
    state.require_product()
    amounts = quote(state.document_type, state.amount, state.resolved_delivery_type)
    return {
        "documentType": state.document_type,
        "documentTypeLabel": format_document_type(state.document_type),
        "firstPartyName": state.first_party_name,
        "secondPartyName": state.second_party_name,
        "transactionValue": amounts.transaction_value,
        "executionDate": state.execution_date,
        "productId": state.product_id,
        "deliveryType": state.resolved_delivery_type,
        "stampAmount": amounts.stamp_amount,
        "deliveryFee": amounts.delivery_fee,
        "totalAmount": amounts.total_amount,
        "back": state.back_from_checkout(),
    }


def _check_checkout_form(form: CheckoutForm, physical: bool):
    if not form.email.strip() or not form.phone.strip() or not form.terms_accepted:
        raise ValidationFailed("Please fill all fields and accept terms to continue.")
    if physical:
        if not form.address or not form.address.strip():
            raise ValidationFailed("Delivery address is required for door delivery.")
        if not form.pincode or not _PINCODE_RE.match(form.pincode.strip()):
            raise ValidationFailed("Please enter a valid 6-digit pincode.")


def place_order(state: WizardState, form: CheckoutForm, user_id: Optional[str] = None) -> dict:
    """Create the order for a completed wizard. Amounts are recomputed here, never taken from the client."""
    state.require_location()
    state.require_product()
    delivery_type = state.resolved_delivery_type
    physical = delivery_type in PHYSICAL_DELIVERY_TYPES
    _check_checkout_form(form, physical)

    if state.product_id == SAMPLE_PRODUCT_ID:
        # The computed product only stands in for an empty catalog
        available = not catalog.list_products(state_id=state.state)
    else:
        available = catalog.exists(catalog.PRODUCTS, state.product_id)
    if not available:
        raise ValidationFailed("The selected stamp product is no longer available.")

    amounts = quote(state.document_type, state.amount, delivery_type)
    order = Order(
        user_id=user_id or "anonymous",
        product_id=state.product_id,
        state_id=state.state,
        district_id=state.district,
        tehsil_id=state.tehsil,
        party1_name=state.first_party_name or "",
        party2_name=state.second_party_name or "",
        email=form.email.strip(),
        phone=form.phone.strip(),
        whatsapp=form.whatsapp,
        delivery_type="door" if physical else "digital",
        address=form.address if physical else None,
        pincode=form.pincode.strip() if physical else None,
        landmark=form.landmark if physical else None,
        document_type=state.document_type,
        transaction_value=amounts.transaction_value,
        execution_date=state.execution_date,
        property_description=state.property_description,
        stamp_amount=amounts.stamp_amount,
        platform_fee=0,
        delivery_fee=amounts.delivery_fee,
        total_paid=amounts.total_amount,
        status="pending",
    )
    order_id = orders.create_order(order)
    return {"orderId": order_id, "totalPaid": amounts.total_amount, "next": confirmation_url(order_id)}


def confirmation(order_id: str) -> dict:
    order = orders.get_order(order_id)
    order["documentTypeLabel"] = format_document_type(order.get("documentType"))
    return order
