"""
Bulk CSV import for stamp products, districts and tehsils.

Files are validated row by row; every valid row is written and each row gets a
status in the report:

- success: written
- warning: written, but the state/district/category it points at does not exist
- error:   rejected (bad row) or the write failed
"""
import csv
import math
from typing import Any, Dict, List, Literal, Optional

from bson.errors import InvalidDocument
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

import catalog
from database import create_document
from errors import ValidationFailed
from logger import get_logger
from schemas import District, StampProduct, Tehsil

logger = get_logger(__name__)

UploadType = Literal["products", "districts", "tehsils"]
RowStatus = Literal["success", "error", "warning"]

UPLOAD_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "products": {
        "headers": ["name", "categoryId", "stateId", "amount", "platformFee", "expressFee", "deliveryFee", "deliveryTime"],
        "sample": ["Sample Product", "category_id_here", "state_id_here", "1000", "50", "100", "50", "instant"],
        "filename": "products_template.csv",
    },
    "districts": {
        "headers": ["name", "stateId"],
        "sample": ["Sample District", "state_id_here"],
        "filename": "districts_template.csv",
    },
    "tehsils": {
        "headers": ["name", "districtId"],
        "sample": ["Sample Tehsil", "district_id_here"],
        "filename": "tehsils_template.csv",
    },
}

FEE_COLUMNS = ("platformFee", "expressFee", "deliveryFee")

TARGET_COLLECTIONS = {
    "products": catalog.PRODUCTS,
    "districts": catalog.DISTRICTS,
    "tehsils": catalog.TEHSILS,
}


class UploadResult(BaseModel):
    row: int
    status: RowStatus
    message: str
    data: Optional[Dict[str, Any]] = None


class UploadReport(BaseModel):
    upload_type: str
    total: int = 0
    succeeded: int = 0
    warnings: int = 0
    failed: int = 0
    results: List[UploadResult] = []


def _require_type(upload_type: str) -> Dict[str, Any]:
    if upload_type not in UPLOAD_TEMPLATES:
        raise ValidationFailed(f"Unknown upload type '{upload_type}'")
    return UPLOAD_TEMPLATES[upload_type]


def template_csv(upload_type: str) -> str:
    template = _require_type(upload_type)
    return ",".join(template["headers"]) + "\n" + ",".join(template["sample"]) + "\n"


def parse_csv(text: str) -> List[List[str]]:
    """Split CSV text into trimmed fields. Blank lines are dropped; quoted commas stay in their field."""
    lines = [line for line in text.splitlines() if line.strip()]
    return [[field.strip() for field in row] for row in csv.reader(lines)]


def _is_number(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def validate_row(upload_type: str, row: List[str], headers: List[str], row_number: int) -> UploadResult:
    if len(row) != len(headers):
        return UploadResult(
            row=row_number,
            status="error",
            message=f"Expected {len(headers)} columns, got {len(row)}",
        )
    data = dict(zip(headers, row))

    def error(message: str) -> UploadResult:
        return UploadResult(row=row_number, status="error", message=message)

    if upload_type == "products":
        if len(data.get("name", "")) < 2:
            return error("Product name must be at least 2 characters")
        if not data.get("amount") or not _is_number(data["amount"]):
            return error("Amount must be a valid number")
        if not data.get("categoryId"):
            return error("Category ID is required")
        if not data.get("stateId"):
            return error("State ID is required")
        for column in FEE_COLUMNS:
            if data.get(column) and not _is_number(data[column]):
                return error(f"{column} must be a valid number")
    elif upload_type == "districts":
        if len(data.get("name", "")) < 2:
            return error("District name must be at least 2 characters")
        if not data.get("stateId"):
            return error("State ID is required")
    elif upload_type == "tehsils":
        if len(data.get("name", "")) < 2:
            return error("Tehsil name must be at least 2 characters")
        if not data.get("districtId"):
            return error("District ID is required")

    return UploadResult(row=row_number, status="success", message="Valid row", data=data)


def _build_record(upload_type: str, data: Dict[str, str]):
    if upload_type == "products":
        return StampProduct(
            name=data["name"],
            category_id=data["categoryId"],
            state_id=data["stateId"],
            amount=int(float(data["amount"])),
            platform_fee=int(float(data.get("platformFee") or 0)),
            express_fee=int(float(data.get("expressFee") or 0)),
            delivery_fee=int(float(data.get("deliveryFee") or 0)),
            delivery_time=data.get("deliveryTime") or "instant",
        )
    if upload_type == "districts":
        return District(name=data["name"], state_id=data["stateId"])
    return Tehsil(name=data["name"], district_id=data["districtId"])


def _missing_references(upload_type: str, data: Dict[str, str]) -> List[str]:
    if upload_type == "products":
        checks = [("state", catalog.STATES, data["stateId"]), ("category", catalog.CATEGORIES, data["categoryId"])]
    elif upload_type == "districts":
        checks = [("state", catalog.STATES, data["stateId"])]
    else:
        checks = [("district", catalog.DISTRICTS, data["districtId"])]
    return [f"{label} '{ref}'" for label, collection, ref in checks if not catalog.exists(collection, ref)]


def import_csv(upload_type: str, text: str) -> UploadReport:
    """Validate every row of `text` and write the valid ones."""
    template = _require_type(upload_type)
    rows = parse_csv(text)
    if len(rows) < 2:
        raise ValidationFailed("CSV file must contain at least a header row and one data row.")

    headers, data_rows = rows[0], rows[1:]
    missing = [h for h in template["headers"] if h not in headers]
    if missing:
        raise ValidationFailed(f"Missing columns: {', '.join(missing)}", details={"expected": template["headers"]})

    report = UploadReport(upload_type=upload_type, total=len(data_rows))
    for index, row in enumerate(data_rows):
        # Row 1 is the header
        result = validate_row(upload_type, row, headers, index + 2)
        if result.status == "success":
            result = _write_row(upload_type, result)
        report.results.append(result)

    report.succeeded = sum(1 for r in report.results if r.status == "success")
    report.warnings = sum(1 for r in report.results if r.status == "warning")
    report.failed = sum(1 for r in report.results if r.status == "error")
    logger.info(
        f"Bulk {upload_type} import: {report.succeeded} ok, {report.warnings} warnings, {report.failed} failed"
    )
    return report


def _write_row(upload_type: str, result: UploadResult) -> UploadResult:
    try:
        record = _build_record(upload_type, result.data)
    except ValidationError as e:
        return UploadResult(row=result.row, status="error", message=e.errors()[0]["msg"], data=result.data)

    try:
        new_id = create_document(TARGET_COLLECTIONS[upload_type], record)
        missing = _missing_references(upload_type, result.data)
    except (PyMongoError, OverflowError, InvalidDocument):
        logger.exception(f"Bulk {upload_type} import: row {result.row} failed to save")
        return UploadResult(row=result.row, status="error", message="Failed to save to database", data=result.data)

    data = {**result.data, "id": new_id}
    if missing:
        return UploadResult(
            row=result.row,
            status="warning",
            message=f"Imported, but {', '.join(missing)} was not found",
            data=data,
        )
    return UploadResult(row=result.row, status="success", message="Imported", data=data)
