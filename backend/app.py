import json
import math
import os
import re
import secrets
import unicodedata
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urljoin, urlparse
from uuid import uuid4

import bcrypt
import resend
from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from flask import Flask, jsonify, render_template, request, send_from_directory
from flask_cors import CORS
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    get_jwt_identity,
    jwt_required,
)
from flask_pymongo import PyMongo
from werkzeug.exceptions import MethodNotAllowed, NotFound, RequestEntityTooLarge
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import secure_filename

load_dotenv()

BRAND_NAME = "Ozonemart"


def create_app(config_overrides: Optional[Dict] = None, mongo_database=None) -> Flask:
    """Create and configure the seller panel API.

    ``config_overrides`` is applied on top of the environment-derived config and
    ``mongo_database`` replaces the PyMongo connection when given.
    """
    app = Flask(__name__)

    # Honor proxy headers so upload URLs keep the public HTTPS origin.
    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["JWT_SECRET_KEY"] = os.getenv(
        "JWT_SECRET_KEY", "change-me-in-production"
    )
    try:
        token_lifetime_hours = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_HOURS", "24"))
    except (TypeError, ValueError):
        token_lifetime_hours = 24
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(hours=token_lifetime_hours)
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI", "mongodb://localhost:27017/seller_panel"
    )
    max_upload_mb = int(os.getenv("MAX_UPLOAD_SIZE_MB", "16"))
    app.config["MAX_CONTENT_LENGTH"] = max_upload_mb * 1024 * 1024
    app.config["UPLOAD_FOLDER"] = os.getenv("UPLOAD_FOLDER") or os.path.join(
        app.root_path, "uploads"
    )
    app.config["RESEND_API_KEY"] = (os.getenv("RESEND_API_KEY") or "").strip()
    app.config["OTP_SENDER_EMAIL"] = (
        os.getenv("OTP_SENDER_EMAIL", "verification@ozonemart.in")
        or "verification@ozonemart.in"
    )
    app.config["NOTIFICATION_SENDER_EMAIL"] = (
        os.getenv("NOTIFICATION_SENDER_EMAIL", "sellers@ozonemart.in")
        or "sellers@ozonemart.in"
    )
    app.config["DEFAULT_ADMIN_EMAIL"] = (
        os.getenv("DEFAULT_ADMIN_EMAIL", "admin@ozonemart.in") or "admin@ozonemart.in"
    )
    app.config["OTP_EXPIRATION_MINUTES"] = int(
        os.getenv("OTP_EXPIRATION_MINUTES", "10")
    )

    if config_overrides:
        app.config.update(config_overrides)

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    default_admin_email = str(app.config["DEFAULT_ADMIN_EMAIL"]).strip().lower()

    # --- Initialize extensions ---
    allowed_origins = [
        "http://localhost:5173",
        "http://localhost:4173",
        "http://localhost:3000",
        os.getenv("FRONTEND_URL", "").strip(),
    ]
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)
    allowed_origins = [origin for origin in allowed_origins if origin]

    CORS(app, supports_credentials=True, origins=allowed_origins or "*")

    jwt = JWTManager(app)

    if mongo_database is None:
        mongo = PyMongo(app)
        mongo_database = mongo.db
    db = mongo_database

    otp_code_length = 6
    otp_expiration_minutes = int(app.config["OTP_EXPIRATION_MINUTES"])
    max_failed_otp_attempts = 5
    otp_collection = db.otp_codes

    try:
        otp_collection.create_index("expires_at", expireAfterSeconds=0)
        otp_collection.create_index([("email", 1), ("purpose", 1)], unique=True)
    except Exception as exc:
        app.logger.warning("Unable to ensure indexes for OTP codes: %s", exc)

    try:
        db.sellers.create_index("email", unique=True)
        db.sellers.create_index("status")
        db.categories.create_index([("seller_id", 1), ("slug", 1)], unique=True)
        db.categories.create_index("parent_id")
        db.products.create_index([("seller_id", 1), ("created_at", -1)])
        db.products.create_index("category_id")
        db.variants.create_index("product_id")
        db.variants.create_index([("seller_id", 1), ("sku", 1)])
    except Exception as exc:
        app.logger.warning("Unable to ensure catalog indexes: %s", exc)

    audit_logs_collection = db.audit_logs
    try:
        audit_logs_collection.create_index([("created_at", -1)])
        audit_logs_collection.create_index(
            [("user_email", 1), ("user_name", 1), ("action", 1)]
        )
    except Exception as exc:
        app.logger.warning("Unable to ensure indexes for audit logs: %s", exc)

    # --- Helpers ---

    ALLOWED_USER_ROLES = {"admin", "seller"}
    ONBOARDING_FLOW = (
        "pending-email-verification",
        "pending-business-info",
        "pending-bank-details",
        "pending-documents",
        "pending-store-details",
        "pending-admin-approval",
        "active",
    )
    ONBOARDING_STEP_LABELS = {
        "pending-email-verification": "email verification",
        "pending-business-info": "business information",
        "pending-bank-details": "bank details",
        "pending-documents": "document upload",
        "pending-store-details": "store details",
        "pending-admin-approval": "admin approval",
    }
    STATUS_TO_STEP = {
        "pending-email-verification": 6,
        "pending-business-info": 2,
        "pending-bank-details": 3,
        "pending-documents": 4,
        "pending-store-details": 5,
        "pending-admin-approval": 7,
        "active": 8,
    }
    ADMIN_ASSIGNABLE_STATUSES = (
        "active",
        "rejected",
        "suspended",
        "pending-admin-approval",
    )
    SELLER_STATUSES = set(ONBOARDING_FLOW) | {"rejected", "suspended"}

    BUSINESS_TYPES = (
        "Proprietorship",
        "Private Ltd",
        "LLP",
        "Partnership",
        "Individual",
    )
    STORE_TYPES = ("Warehouse", "Retail", "Dark Store")
    DOCUMENT_FIELDS = {
        "gstCertificate": "GST Certificate",
        "panCard": "PAN Card",
        "fssaiLicence": "FSSAI Licence",
        "addressProof": "Address Proof",
        "additionalCertificate": "Additional Certificate",
    }
    VERIFICATION_STATES = ("pending", "verified", "rejected")

    CATEGORY_STATUSES = ("active", "inactive")
    PRODUCT_STATUSES = ("draft", "published", "archived")
    VARIANT_STATUSES = ("active", "inactive")
    MAX_PRODUCT_IMAGES = 10
    MAX_PRODUCT_VARIANTS = 50
    MAX_STORE_PHOTOS = 10
    MAX_DELIVERY_AREAS = 100
    MIN_PASSWORD_LENGTH = 8

    IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
    DOCUMENT_EXTENSIONS = {"png", "jpg", "jpeg", "pdf"}

    email_regex = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    mobile_regex = re.compile(r"^[6-9][0-9]{9}$")
    contact_regex = re.compile(r"^0?[0-9]{10}$")
    pan_regex = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
    gst_regex = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
    ifsc_regex = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
    account_number_regex = re.compile(r"^[0-9]{9,18}$")
    pincode_regex = re.compile(r"^[1-9][0-9]{5}$")
    fssai_regex = re.compile(r"^[0-9]{14}$")
    hsn_regex = re.compile(r"^[0-9]{4,8}$")
    time_regex = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")
    date_regex = re.compile(r"^\d{4}-\d{2}-\d{2}$")

    OTP_PURPOSES = {
        "verify-email": {
            "subject": f"{BRAND_NAME} Seller • Verify your email",
            "intent": "verify your email address and continue seller registration",
        },
        "login": {
            "subject": f"{BRAND_NAME} Seller • Your sign-in code",
            "intent": "sign in to your seller panel",
        },
        "password-reset": {
            "subject": f"{BRAND_NAME} Seller • Password reset code",
            "intent": "reset your seller panel password",
        },
    }

    def fail(message: str, status_code: int = 400, **extra):
        return jsonify({"success": False, "message": message, **extra}), status_code

    def normalize_email(value: Optional[str]) -> str:
        return str(value or "").strip().lower()

    def is_valid_email(value: Optional[str]) -> bool:
        normalized = normalize_email(value)
        return bool(normalized and email_regex.match(normalized))

    def normalize_phone(value) -> str:
        digits = re.sub(r"[\s\-()]", "", str(value or "").strip())
        if digits.startswith("+91"):
            digits = digits[3:]
        elif len(digits) == 12 and digits.startswith("91"):
            digits = digits[2:]
        return digits

    def clean_text(value, max_length: int = 500) -> str:
        if value is None:
            return ""
        return " ".join(str(value).split())[:max_length]

    def pick(payload: Optional[Dict], *names, default=None):
        if not isinstance(payload, dict):
            return default
        for name in names:
            if name in payload:
                return payload.get(name)
        return default

    def has_any(payload: Optional[Dict], *names) -> bool:
        return isinstance(payload, dict) and any(name in payload for name in names)

    def as_bytes(value) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode("utf-8")
        return b""

    def hash_secret(value: str) -> bytes:
        return bcrypt.hashpw(value.encode("utf-8"), bcrypt.gensalt())

    def format_timestamp(value) -> Optional[str]:
        if isinstance(value, datetime):
            return value.isoformat() + "Z"
        return None

    def read_request_payload() -> Dict:
        payload = request.form.to_dict() if request.form else {}
        if not payload:
            payload = request.get_json(silent=True) or {}
        return payload if isinstance(payload, dict) else {}

    def parse_json_list(value):
        if value is None:
            return []
        if isinstance(value, (list, tuple, set)):
            return [item for item in value]
        if isinstance(value, (bytes, bytearray)):
            try:
                value = value.decode("utf-8")
            except UnicodeDecodeError:
                value = ""
        if isinstance(value, str):
            candidate = value.strip()
            if not candidate:
                return []
            try:
                parsed = json.loads(candidate)
                if isinstance(parsed, list):
                    return parsed
            except (json.JSONDecodeError, ValueError):
                pass
            if "," in candidate:
                return [
                    item.strip()
                    for item in candidate.split(",")
                    if item and item.strip()
                ]
            return [candidate]
        return []

    def parse_json_object(value) -> Tuple[Optional[Dict], bool]:
        """Return ``(object, ok)``; an empty value parses to an empty dict."""
        if value is None:
            return {}, True
        if isinstance(value, dict):
            return value, True
        if isinstance(value, (bytes, bytearray)):
            try:
                value = value.decode("utf-8")
            except UnicodeDecodeError:
                return None, False
        if isinstance(value, str):
            candidate = value.strip()
            if not candidate:
                return {}, True
            try:
                parsed = json.loads(candidate)
            except (json.JSONDecodeError, ValueError):
                return None, False
            if isinstance(parsed, dict):
                return parsed, True
        return None, False

    def parse_bool(value) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        return str(value or "").strip().lower() in {"true", "1", "yes", "on"}

    def unique_preserve(items: List[str]) -> List[str]:
        seen = set()
        result: List[str] = []
        for item in items:
            if not item or item in seen:
                continue
            seen.add(item)
            result.append(item)
        return result

    def safe_float(value, default=0.0):
        try:
            numeric = float(value)
        except (TypeError, ValueError):
            return default
        if math.isfinite(numeric):
            return numeric
        return default

    def safe_positive_int(value, default=0):
        try:
            numeric = int(float(value))
        except (TypeError, ValueError):
            return default
        return max(default, numeric)

    def normalize_object_id_value(value):
        if isinstance(value, ObjectId):
            return value
        try:
            return ObjectId(str(value))
        except (InvalidId, TypeError):
            return None

    def match_choice(value, choices) -> str:
        candidate = clean_text(value, 60).lower()
        for choice in choices:
            if choice.lower() == candidate:
                return choice
        return ""

    def normalize_role(value: Optional[str]) -> str:
        normalized = str(value or "").strip().lower()
        return normalized if normalized in ALLOWED_USER_ROLES else "seller"

    def get_user_role(seller_document) -> str:
        if not seller_document:
            return "seller"

        email = normalize_email(seller_document.get("email"))
        if email == default_admin_email:
            return "admin"

        return normalize_role(seller_document.get("role", "seller"))

    def flow_position(status: Optional[str]) -> int:
        if status in ONBOARDING_FLOW:
            return ONBOARDING_FLOW.index(status)
        # Rejected and suspended sellers have already finished onboarding.
        return len(ONBOARDING_FLOW)

    def onboarding_step_for(status: Optional[str]) -> int:
        return STATUS_TO_STEP.get(status or "", 1)

    # --- OTP and email delivery ---

    def generate_otp_code(length: int = otp_code_length) -> str:
        upper_bound = 10**length
        return f"{secrets.randbelow(upper_bound):0{length}d}"

    def persist_otp_code(email: str, purpose: str, otp: str) -> datetime:
        expires_at = datetime.utcnow() + timedelta(minutes=otp_expiration_minutes)

        otp_collection.update_one(
            {"email": email, "purpose": purpose},
            {
                "$set": {
                    "email": email,
                    "purpose": purpose,
                    "otp_hash": hash_secret(otp),
                    "expires_at": expires_at,
                    "created_at": datetime.utcnow(),
                    "failed_attempts": 0,
                }
            },
            upsert=True,
        )

        return expires_at

    def consume_otp_code(email: str, purpose: str, otp: str) -> Optional[str]:
        """Check ``otp`` against the stored code and delete it on success.

        Returns an error message, or ``None`` when the code matched.
        """
        if not (otp.isdigit() and len(otp) == otp_code_length):
            return f"The verification code must be {otp_code_length} digits."

        code_record = otp_collection.find_one({"email": email, "purpose": purpose})
        if not code_record:
            return "No verification request found for this email. Please request a new code."

        expires_at = code_record.get("expires_at")
        if not isinstance(expires_at, datetime) or expires_at < datetime.utcnow():
            otp_collection.delete_one({"_id": code_record["_id"]})
            return "The verification code has expired. Please request a new one."

        stored_hash = as_bytes(code_record.get("otp_hash"))
        if not stored_hash or not bcrypt.checkpw(otp.encode("utf-8"), stored_hash):
            failed_attempts = int(code_record.get("failed_attempts", 0) or 0) + 1
            if failed_attempts >= max_failed_otp_attempts:
                otp_collection.delete_one({"_id": code_record["_id"]})
                return "Too many incorrect attempts. Please request a new verification code."

            otp_collection.update_one(
                {"_id": code_record["_id"]},
                {"$set": {"failed_attempts": failed_attempts}},
            )
            return "The verification code is incorrect."

        otp_collection.delete_one({"_id": code_record["_id"]})
        return None

    def log_otp_failure(email: str, details: str):
        app.logger.error("OTP dispatch failed for %s: %s", email, details)

    def send_email_via_resend(payload: Dict[str, object]):
        configured_api_key = str(app.config.get("RESEND_API_KEY") or "").strip()
        if not configured_api_key:
            return False, "Resend API key is not configured."

        previous_api_key = getattr(resend, "api_key", None)
        resend.api_key = configured_api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            return False, str(exc)
        finally:
            resend.api_key = previous_api_key

        if not isinstance(response, dict) or not response.get("id"):
            return False, str(response)

        return True, None

    def send_otp_email(recipient_email: str, purpose: str, otp: str, recipient_name: str = ""):
        purpose_details = OTP_PURPOSES[purpose]
        html_body = render_template(
            "emails/otp_code.html",
            brand_name=BRAND_NAME,
            otp=otp,
            intent=purpose_details["intent"],
            recipient_name=recipient_name,
            expiration_minutes=otp_expiration_minutes,
        )
        text_body = (
            f"Your {BRAND_NAME} seller code is {otp}. "
            f"Use it within {otp_expiration_minutes} minutes to {purpose_details['intent']}."
        )

        payload: Dict[str, object] = {
            "from": f"{BRAND_NAME} Seller <{app.config['OTP_SENDER_EMAIL']}>",
            "to": [recipient_email],
            "subject": purpose_details["subject"],
            "html": html_body,
            "text": text_body,
        }

        return send_email_via_resend(payload)

    def dispatch_otp_code(email: str, purpose: str, recipient_name: str = ""):
        otp = generate_otp_code()
        expires_at = persist_otp_code(email, purpose, otp)

        sent, error_details = send_otp_email(email, purpose, otp, recipient_name)
        if not sent:
            otp_collection.delete_one({"email": email, "purpose": purpose})
            log_otp_failure(email, error_details or "Unknown Resend error")
            return {
                "success": False,
                "error": error_details or "Failed to deliver verification email.",
            }

        return {
            "success": True,
            "expires_at": expires_at,
            "otp_length": otp_code_length,
        }

    def otp_delivery_details(otp_result: Dict) -> Dict:
        expires_at = otp_result.get("expires_at")
        return {
            "otpLength": otp_result.get("otp_length", otp_code_length),
            "expiresInSeconds": otp_expiration_minutes * 60,
            **({"expiresAt": format_timestamp(expires_at)} if expires_at else {}),
        }

    def send_seller_status_email(seller_document, status: str, reason: str = ""):
        recipient_email = normalize_email(seller_document.get("email"))
        if not recipient_email:
            return False, "Missing seller email for the status notification."

        store_name = (seller_document.get("store_details") or {}).get("store_name") or ""
        html_body = render_template(
            "emails/seller_status.html",
            brand_name=BRAND_NAME,
            recipient_name=seller_document.get("full_name", "") or "",
            store_name=store_name,
            status=status,
            reason=reason,
        )
        if status == "active":
            subject = f"{BRAND_NAME} Seller • Your store is approved"
            text_body = (
                "Your seller account has been approved. "
                "You can now sign in and start listing products."
            )
        elif status == "rejected":
            subject = f"{BRAND_NAME} Seller • Application update"
            text_body = (
                "Your seller application could not be approved."
                + (f" Reason: {reason}." if reason else "")
                + " Update your profile and contact support to request another review."
            )
        else:
            subject = f"{BRAND_NAME} Seller • Account status update"
            text_body = (
                f"Your seller account status is now {status}."
                + (f" Reason: {reason}." if reason else "")
            )

        payload: Dict[str, object] = {
            "from": f"{BRAND_NAME} Seller <{app.config['NOTIFICATION_SENDER_EMAIL']}>",
            "to": [recipient_email],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        return send_email_via_resend(payload)

    # --- Audit trail ---

    def sanitize_metadata(metadata: Optional[Dict]) -> Dict[str, str]:
        if not isinstance(metadata, dict):
            return {}
        sanitized: Dict[str, str] = {}
        for key, value in metadata.items():
            if value is None:
                continue
            sanitized[str(key)] = str(value)
        return sanitized

    def record_audit_log(
        actor_email: Optional[str], action: str, metadata: Optional[Dict] = None
    ):
        if not action:
            return
        try:
            normalized_email = normalize_email(actor_email)
            log_document = {
                "user_email": normalized_email or None,
                "user_name": "",
                "action": action,
                "metadata": sanitize_metadata(metadata),
                "created_at": datetime.utcnow(),
            }
            if normalized_email:
                seller_document = db.sellers.find_one({"email": normalized_email})
                if seller_document:
                    log_document["user_name"] = seller_document.get("full_name", "") or ""
                    log_document["metadata"].setdefault(
                        "user_role", get_user_role(seller_document)
                    )
            audit_logs_collection.insert_one(log_document)
        except Exception as exc:
            app.logger.warning("Unable to record audit log: %s", exc)

    def serialize_audit_log(document):
        if not document:
            return {}
        metadata = document.get("metadata")
        return {
            "id": str(document.get("_id")),
            "userEmail": document.get("user_email") or "",
            "userName": document.get("user_name") or "",
            "action": document.get("action") or "",
            "metadata": metadata if isinstance(metadata, dict) else {},
            "createdAt": format_timestamp(document.get("created_at")),
        }

    def parse_iso_date(value: Optional[str], *, end_of_day: bool = False):
        if not value:
            return None
        candidate = str(value).strip()
        if not candidate:
            return None
        normalized = candidate.replace("Z", "+00:00")
        if date_regex.fullmatch(candidate):
            normalized = f"{candidate}T00:00:00"
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
        if end_of_day and date_regex.fullmatch(candidate):
            return parsed + timedelta(days=1)
        return parsed

    def build_date_range_filter(start_param, end_param) -> Dict[str, datetime]:
        start_date = parse_iso_date(start_param)
        end_date = parse_iso_date(end_param, end_of_day=True)
        created_filter: Dict[str, datetime] = {}
        if start_date:
            created_filter["$gte"] = start_date
        if end_date:
            created_filter["$lt"] = end_date
        return created_filter

    def read_pagination(default_limit: int = 50, max_limit: int = 200) -> Tuple[int, int]:
        page = max(safe_positive_int(request.args.get("page"), 0) or 1, 1)
        limit = safe_positive_int(request.args.get("limit"), 0) or default_limit
        return page, min(max(limit, 1), max_limit)

    # --- Uploads ---

    def allowed_extension(filename: str, allowed: Set[str]) -> bool:
        extension = os.path.splitext(filename)[1].lower().lstrip(".")
        if not extension:
            return False
        return extension in allowed

    def describe_extensions(allowed: Set[str]) -> str:
        ordered = sorted(extension.upper() for extension in allowed)
        return ", ".join(ordered[:-1]) + f" or {ordered[-1]}" if len(ordered) > 1 else ordered[0]

    def save_upload(upload, allowed: Set[str], label: str = "file"):
        if not upload or not getattr(upload, "filename", ""):
            return None, f"A {label} is required."

        original_filename = secure_filename(upload.filename)
        if not original_filename:
            return None, f"Please choose a valid name for the {label}."

        if not allowed_extension(original_filename, allowed):
            return (
                None,
                f"Unsupported {label} format. Upload {describe_extensions(allowed)} files.",
            )

        extension = os.path.splitext(original_filename)[1].lower()
        unique_filename = f"{uuid4().hex}{extension}"
        destination = os.path.join(app.config["UPLOAD_FOLDER"], unique_filename)

        try:
            upload.save(destination)
        except OSError:
            return None, f"We could not store the uploaded {label}. Please try again."

        return unique_filename, None

    def save_uploads(uploads, allowed: Set[str], label: str = "image"):
        saved_filenames: List[str] = []
        if not uploads:
            return saved_filenames, None

        for upload in uploads:
            if not upload or not getattr(upload, "filename", ""):
                continue
            new_filename, upload_error = save_upload(upload, allowed, label)
            if upload_error:
                remove_upload(saved_filenames)
                return [], upload_error
            saved_filenames.append(new_filename)

        return saved_filenames, None

    def is_external_reference(value) -> bool:
        return str(value or "").strip().lower().startswith(("http://", "https://"))

    def remove_upload(filename):
        if not filename:
            return
        if isinstance(filename, (list, tuple, set)):
            for item in filename:
                remove_upload(item)
            return
        if is_external_reference(filename):
            return

        target = os.path.join(app.config["UPLOAD_FOLDER"], os.path.basename(str(filename)))
        try:
            os.remove(target)
        except FileNotFoundError:
            return
        except OSError as exc:
            app.logger.warning("Unable to remove upload %s: %s", filename, exc)

    def build_upload_url(filename: Optional[str]) -> str:
        if not filename:
            return ""

        sanitized = str(filename).strip()
        if not sanitized:
            return ""
        if is_external_reference(sanitized):
            return sanitized

        return urljoin(request.host_url, f"uploads/{sanitized}")

    def normalize_media_reference(value) -> str:
        """Reduce a URL pointing at our upload route to its stored filename."""
        candidate = str(value or "").strip()
        if not candidate:
            return ""
        parsed = urlparse(candidate)
        if parsed.scheme and "/uploads/" not in parsed.path:
            return candidate
        path_candidate = parsed.path if parsed.scheme else candidate
        basename = os.path.basename(path_candidate.replace("\\", "/"))
        return basename or candidate

    def resolve_retained_media(raw_value, existing: List[str]) -> Tuple[Optional[List[str]], bool]:
        """Parse a client-supplied list of media to keep.

        Local files must already be in ``existing``; external URLs are kept as given.
        """
        if isinstance(raw_value, list):
            parsed_value = raw_value
        else:
            try:
                parsed_value = json.loads(raw_value) if raw_value else []
            except (json.JSONDecodeError, TypeError):
                return None, False
        if not isinstance(parsed_value, list):
            return None, False

        retained: List[str] = []
        for item in parsed_value:
            candidate = normalize_media_reference(item)
            if not candidate:
                continue
            if candidate in retained:
                continue
            if candidate in existing or is_external_reference(candidate):
                retained.append(candidate)
                continue
            for current in existing:
                if current and current.endswith(candidate) and current not in retained:
                    retained.append(current)
                    break
        return retained, True

    # --- Seller profile sections ---

    ADDRESS_FIELDS = ("address_line1", "address_line2", "city", "state", "pincode")
    ADDRESS_FIELD_ALIASES = {
        "address_line1": (
            "addressLine1",
            "address_line1",
            "address_line_1",
            "line1",
            "street",
        ),
        "address_line2": ("addressLine2", "address_line2", "address_line_2", "line2"),
        "city": ("city", "town"),
        "state": ("state", "region"),
        "pincode": ("pincode", "pinCode", "pin_code", "postcode", "postalCode", "zip"),
    }
    ADDRESS_REQUIRED_FIELDS = ("address_line1", "city", "state", "pincode")

    def normalize_address_payload(payload: Optional[Dict]) -> Dict[str, str]:
        if not isinstance(payload, dict):
            return {}

        normalized: Dict[str, str] = {}
        for field in ADDRESS_FIELDS:
            value = pick(payload, *ADDRESS_FIELD_ALIASES.get(field, (field,)))
            if value is None:
                continue
            trimmed = clean_text(value, 200)
            if trimmed:
                normalized[field] = trimmed
        return normalized

    def validate_address(raw_value, label: str) -> Tuple[Optional[Dict[str, str]], Optional[str]]:
        payload, ok = parse_json_object(raw_value)
        if not ok:
            return None, f"We could not understand the {label.lower()}."
        normalized = normalize_address_payload(payload)
        if not all(normalized.get(field) for field in ADDRESS_REQUIRED_FIELDS):
            return None, f"{label} needs address line 1, city, state and pincode."
        if not pincode_regex.match(normalized["pincode"]):
            return None, f"{label} pincode must be a valid 6-digit pincode."
        return normalized, None

    def serialize_address(payload: Optional[Dict]) -> Dict[str, Optional[str]]:
        normalized = normalize_address_payload(payload)
        return {
            "addressLine1": normalized.get("address_line1", ""),
            "addressLine2": normalized.get("address_line2") or None,
            "city": normalized.get("city", ""),
            "state": normalized.get("state", ""),
            "pincode": normalized.get("pincode", ""),
        }

    def normalize_business_info(payload: Dict) -> Tuple[Optional[Dict], Optional[str]]:
        business_name = clean_text(pick(payload, "businessName", "business_name"), 150)
        if len(business_name) < 2:
            return None, "Business name is required."

        legal_name = clean_text(pick(payload, "legalName", "legal_name"), 150)
        business_type = match_choice(
            pick(payload, "businessType", "business_type"), BUSINESS_TYPES
        )
        if not business_type:
            return None, f"Business type must be one of: {', '.join(BUSINESS_TYPES)}."

        pan_number = clean_text(pick(payload, "panNumber", "pan_number"), 20).upper()
        if not pan_regex.match(pan_number):
            return None, "Please provide a valid PAN number (e.g. ABCDE1234F)."

        gst_number = clean_text(pick(payload, "gstNumber", "gst_number"), 20).upper()
        if gst_number and not gst_regex.match(gst_number):
            return None, "Please provide a valid 15-character GST number."
        if gst_number and gst_number[2:12] != pan_number:
            return None, "The GST number does not match the PAN number."

        business_address, address_error = validate_address(
            pick(payload, "businessAddress", "business_address"), "Business address"
        )
        if address_error:
            return None, address_error

        business_contact = normalize_phone(
            pick(payload, "businessContact", "business_contact")
        )
        if business_contact and not contact_regex.match(business_contact):
            return None, "Business contact must be a valid phone number."

        business_email = normalize_email(pick(payload, "businessEmail", "business_email"))
        if business_email and not is_valid_email(business_email):
            return None, "Business email must be a valid email address."

        return (
            {
                "business_name": business_name,
                "legal_name": legal_name or business_name,
                "business_type": business_type,
                "gst_number": gst_number,
                "pan_number": pan_number,
                "business_address": business_address,
                "business_contact": business_contact,
                "business_email": business_email,
            },
            None,
        )

    def serialize_business_info(business_info: Optional[Dict]) -> Dict:
        business_info = business_info or {}
        return {
            "businessName": business_info.get("business_name", ""),
            "legalName": business_info.get("legal_name", ""),
            "businessType": business_info.get("business_type", ""),
            "gstNumber": business_info.get("gst_number", ""),
            "panNumber": business_info.get("pan_number", ""),
            "businessAddress": serialize_address(business_info.get("business_address")),
            "businessContact": business_info.get("business_contact", ""),
            "businessEmail": business_info.get("business_email", ""),
        }

    def normalize_bank_details(payload: Dict) -> Tuple[Optional[Dict], Optional[str]]:
        account_holder_name = clean_text(
            pick(payload, "accountHolderName", "account_holder_name"), 120
        )
        bank_name = clean_text(pick(payload, "bankName", "bank_name"), 120)
        branch_name = clean_text(pick(payload, "branchName", "branch_name"), 120)
        account_number = re.sub(
            r"\s", "", str(pick(payload, "accountNumber", "account_number") or "")
        )
        ifsc_code = clean_text(pick(payload, "ifscCode", "ifsc_code"), 20).upper()

        if not account_holder_name or not bank_name or not branch_name:
            return None, "Account holder name, bank name and branch name are required."
        if not account_number_regex.match(account_number):
            return None, "Account number must contain 9 to 18 digits."
        if not ifsc_regex.match(ifsc_code):
            return None, "Please provide a valid IFSC code (e.g. HDFC0001234)."

        return (
            {
                "account_holder_name": account_holder_name,
                "bank_name": bank_name,
                "branch_name": branch_name,
                "account_number": account_number,
                "ifsc_code": ifsc_code,
            },
            None,
        )

    def serialize_bank_details(bank_details: Optional[Dict]) -> Dict:
        bank_details = bank_details or {}
        return {
            "accountHolderName": bank_details.get("account_holder_name", ""),
            "bankName": bank_details.get("bank_name", ""),
            "branchName": bank_details.get("branch_name", ""),
            "accountNumber": bank_details.get("account_number", ""),
            "ifscCode": bank_details.get("ifsc_code", ""),
            "cancelledChequeUrl": build_upload_url(
                bank_details.get("cancelled_cheque_filename")
            ),
            "verificationStatus": bank_details.get("verification_status") or "pending",
        }

    def serialize_document(document: Dict) -> Dict:
        return {
            "_id": str(document.get("id", "")),
            "docType": document.get("doc_type", ""),
            "fileUrl": build_upload_url(document.get("filename")),
            "fileName": document.get("original_filename", "") or "",
            "verificationStatus": document.get("verification_status") or "pending",
            "uploadedAt": format_timestamp(document.get("uploaded_at")),
        }

    def normalize_store_timings(raw_value) -> Tuple[Optional[Dict[str, str]], Optional[str]]:
        timings, ok = parse_json_object(raw_value)
        if not ok or not timings:
            return None, "Store timings need an opening and a closing time."
        open_time = str(pick(timings, "open", "openingTime") or "").strip()
        close_time = str(pick(timings, "close", "closingTime") or "").strip()
        if not time_regex.match(open_time) or not time_regex.match(close_time):
            return None, "Store timings must use the HH:MM format."
        if close_time <= open_time:
            return None, "Closing time must be later than opening time."
        return {"open": open_time, "close": close_time}, None

    def normalize_store_details(payload: Dict) -> Tuple[Optional[Dict], Optional[str]]:
        store_name = clean_text(pick(payload, "storeName", "store_name"), 150)
        if len(store_name) < 2:
            return None, "Store name is required."

        store_address, address_error = validate_address(
            pick(payload, "storeAddress", "store_address"), "Store address"
        )
        if address_error:
            return None, address_error

        store_type = match_choice(pick(payload, "storeType", "store_type"), STORE_TYPES)
        if not store_type:
            return None, f"Store type must be one of: {', '.join(STORE_TYPES)}."

        store_timings, timings_error = normalize_store_timings(
            pick(payload, "storeTimings", "store_timings")
        )
        if timings_error:
            return None, timings_error

        fssai_number = re.sub(
            r"\s", "", str(pick(payload, "fssaiLicenceNumber", "fssai_licence_number") or "")
        )
        if fssai_number and not fssai_regex.match(fssai_number):
            return None, "FSSAI licence number must be 14 digits."

        store_contact = normalize_phone(
            pick(payload, "storeContactNumber", "store_contact_number")
        )
        if not contact_regex.match(store_contact):
            return None, "Store contact number must be a valid phone number."

        raw_areas = parse_json_list(
            pick(payload, "coveredDeliveryAreas", "covered_delivery_areas")
        )
        delivery_areas = unique_preserve(
            [clean_text(area, 80) for area in raw_areas if not isinstance(area, (dict, list))]
        )
        if len(delivery_areas) > MAX_DELIVERY_AREAS:
            return None, f"You can list up to {MAX_DELIVERY_AREAS} delivery areas."

        return (
            {
                "store_name": store_name,
                "store_address": store_address,
                "store_type": store_type,
                "store_timings": store_timings,
                "fssai_licence_number": fssai_number,
                "store_contact_number": store_contact,
                "covered_delivery_areas": delivery_areas,
            },
            None,
        )

    def serialize_store_details(store_details: Optional[Dict]) -> Dict:
        store_details = store_details or {}
        timings = store_details.get("store_timings") or {}
        return {
            "storeName": store_details.get("store_name", ""),
            "storeAddress": serialize_address(store_details.get("store_address")),
            "storeType": store_details.get("store_type", ""),
            "storeTimings": {
                "open": timings.get("open", ""),
                "close": timings.get("close", ""),
            },
            "fssaiLicenceNumber": store_details.get("fssai_licence_number", ""),
            "storeContactNumber": store_details.get("store_contact_number", ""),
            "coveredDeliveryAreas": list(store_details.get("covered_delivery_areas") or []),
            "storePhotos": [
                build_upload_url(photo)
                for photo in store_details.get("store_photos") or []
                if photo
            ],
        }

    def serialize_seller(seller_document, include_admin_fields: bool = False) -> Dict:
        if not seller_document:
            return {}

        status = seller_document.get("status") or ""
        serialized = {
            "_id": str(seller_document.get("_id")),
            "fullName": seller_document.get("full_name", "") or "",
            "email": seller_document.get("email", "") or "",
            "mobileNumber": seller_document.get("mobile_number", "") or "",
            "alternateContact": seller_document.get("alternate_contact", "") or "",
            "role": get_user_role(seller_document),
            "status": status,
            "statusReason": seller_document.get("status_reason") or None,
            "onboardingStep": onboarding_step_for(status),
            "emailVerified": bool(seller_document.get("email_verified")),
            "verifiedAt": format_timestamp(seller_document.get("verified_at")),
            "businessInfo": serialize_business_info(seller_document.get("business_info")),
            "bankDetails": serialize_bank_details(seller_document.get("bank_details")),
            "storeDetails": serialize_store_details(seller_document.get("store_details")),
            "documents": [
                serialize_document(document)
                for document in seller_document.get("documents") or []
                if isinstance(document, dict)
            ],
            "createdAt": format_timestamp(seller_document.get("created_at")),
            "updatedAt": format_timestamp(seller_document.get("updated_at")),
            "approvedAt": format_timestamp(seller_document.get("approved_at")),
        }
        if include_admin_fields:
            serialized["lastLoginAt"] = format_timestamp(
                seller_document.get("last_login_at")
            )
        return serialized

    def serialize_seller_summary(seller_document) -> Dict:
        status = seller_document.get("status") or ""
        return {
            "_id": str(seller_document.get("_id")),
            "fullName": seller_document.get("full_name", "") or "",
            "email": seller_document.get("email", "") or "",
            "role": get_user_role(seller_document),
            "status": status,
            "onboardingStep": onboarding_step_for(status),
        }

    def build_seller_details(seller_document) -> Dict:
        """Flatten a seller into the field names the registration wizard edits."""
        business = serialize_business_info(seller_document.get("business_info"))
        bank = serialize_bank_details(seller_document.get("bank_details"))
        store = serialize_store_details(seller_document.get("store_details"))
        details = {
            "fullName": seller_document.get("full_name", "") or "",
            "email": seller_document.get("email", "") or "",
            "mobileNumber": seller_document.get("mobile_number", "") or "",
        }
        if seller_document.get("business_info"):
            details.update(business)
        if seller_document.get("bank_details"):
            details.update(
                {
                    key: value
                    for key, value in bank.items()
                    if key not in {"verificationStatus"}
                }
            )
        if seller_document.get("store_details"):
            details.update(
                {key: value for key, value in store.items() if key != "storePhotos"}
            )
            details["coveredDeliveryAreas"] = ", ".join(store["coveredDeliveryAreas"])
            details["storePhotoUrls"] = store["storePhotos"]
        return details

    def build_session_payload(seller_document, message: str) -> Dict:
        email = normalize_email(seller_document.get("email"))
        status = seller_document.get("status") or ""
        return {
            "success": True,
            "message": message,
            "token": create_access_token(identity=email),
            "sellerStatus": status,
            "onboardingStep": onboarding_step_for(status),
            "sellerDetails": build_seller_details(seller_document),
            "seller": serialize_seller_summary(seller_document),
        }

    def load_current_seller():
        current_email = get_jwt_identity()
        seller_document = db.sellers.find_one({"email": normalize_email(current_email)})
        if not seller_document:
            return None, fail("Account not found. Please sign in again.", 401)
        return seller_document, None

    def require_role(*roles: str):
        allowed = {normalize_role(role) for role in roles if role}

        current_seller, load_error = load_current_seller()
        if load_error:
            return None, load_error
        user_role = get_user_role(current_seller)

        if user_role == "admin" or not allowed or user_role in allowed:
            return current_seller, None

        return (
            None,
            fail("You need additional permissions to perform this action.", 403),
        )

    def require_admin_user():
        return require_role("admin")

    def require_verified_seller():
        current_seller, load_error = load_current_seller()
        if load_error:
            return None, load_error
        if not current_seller.get("email_verified"):
            return (
                None,
                fail(
                    "Please verify your email before continuing.",
                    403,
                    requiresVerification=True,
                ),
            )
        return current_seller, None

    def require_active_seller():
        current_seller, load_error = require_verified_seller()
        if load_error:
            return None, load_error
        if get_user_role(current_seller) == "admin":
            return current_seller, None
        status = current_seller.get("status")
        if status != "active":
            return (
                None,
                fail(
                    "Your seller account must be approved before you can manage the catalog.",
                    403,
                    sellerStatus=status,
                ),
            )
        return current_seller, None

    def resolve_onboarding_step(seller_document, step_status: str):
        """Return ``(next_status, error)`` for submitting the ``step_status`` form.

        ``next_status`` is ``None`` when the submission is a resubmission that
        must not move the seller along the flow.
        """
        if not seller_document.get("email_verified"):
            return None, fail(
                "Please verify your email before continuing.",
                403,
                requiresVerification=True,
            )

        current_status = seller_document.get("status")
        current_position = flow_position(current_status)
        step_position = ONBOARDING_FLOW.index(step_status)

        if current_position < step_position:
            pending_label = ONBOARDING_STEP_LABELS.get(current_status, "previous")
            return None, fail(
                f"Please complete the {pending_label} step first.",
                409,
                sellerStatus=current_status,
                onboardingStep=onboarding_step_for(current_status),
            )

        if current_position == step_position:
            return ONBOARDING_FLOW[step_position + 1], None

        return None, None

    def save_seller_updates(seller_document, updates: Dict, unset_ops: Optional[Dict] = None):
        updates["updated_at"] = datetime.utcnow()
        update_query: Dict[str, Dict] = {"$set": updates}
        if unset_ops:
            update_query["$unset"] = unset_ops
        db.sellers.update_one({"_id": seller_document["_id"]}, update_query)
        return db.sellers.find_one({"_id": seller_document["_id"]})

    def apply_bank_details(seller_document, cheque_required: bool):
        payload = read_request_payload()
        bank_details, bank_error = normalize_bank_details(payload)
        if bank_error:
            return None, None, bank_error

        existing_bank = seller_document.get("bank_details") or {}
        existing_cheque = existing_bank.get("cancelled_cheque_filename")
        cheque_file = request.files.get("cancelledCheque") if request.files else None

        new_cheque = None
        if cheque_file and getattr(cheque_file, "filename", ""):
            new_cheque, upload_error = save_upload(
                cheque_file, DOCUMENT_EXTENSIONS, "cancelled cheque"
            )
            if upload_error:
                return None, None, upload_error
        elif cheque_required and not existing_cheque:
            return None, None, "Please upload a cancelled cheque."

        bank_details["cancelled_cheque_filename"] = new_cheque or existing_cheque
        bank_details["verification_status"] = "pending"
        replaced = existing_cheque if new_cheque and existing_cheque else None
        return bank_details, replaced, None

    def apply_document_uploads(seller_document, require_any: bool):
        uploads = []
        if request.files:
            for field_name, doc_type in DOCUMENT_FIELDS.items():
                upload = request.files.get(field_name)
                if upload and getattr(upload, "filename", ""):
                    uploads.append((doc_type, upload))

        existing_documents = [
            document
            for document in seller_document.get("documents") or []
            if isinstance(document, dict)
        ]
        if not uploads:
            if require_any and existing_documents:
                return existing_documents, [], None
            return None, [], "Please upload at least one document."

        saved_documents: List[Dict] = []
        for doc_type, upload in uploads:
            filename, upload_error = save_upload(upload, DOCUMENT_EXTENSIONS, "document")
            if upload_error:
                remove_upload([document["filename"] for document in saved_documents])
                return None, [], f"{doc_type}: {upload_error}"
            saved_documents.append(
                {
                    "id": uuid4().hex,
                    "doc_type": doc_type,
                    "filename": filename,
                    "original_filename": secure_filename(upload.filename),
                    "verification_status": "pending",
                    "uploaded_at": datetime.utcnow(),
                }
            )

        replaced_types = {document["doc_type"] for document in saved_documents}
        replaced_filenames = [
            document.get("filename")
            for document in existing_documents
            if document.get("doc_type") in replaced_types
        ]
        merged = [
            document
            for document in existing_documents
            if document.get("doc_type") not in replaced_types
        ] + saved_documents
        return merged, replaced_filenames, None

    def apply_store_details(seller_document):
        payload = read_request_payload()
        store_details, store_error = normalize_store_details(payload)
        if store_error:
            return None, [], store_error

        existing_store = seller_document.get("store_details") or {}
        existing_photos = [
            str(photo) for photo in existing_store.get("store_photos") or [] if photo
        ]

        raw_photo_refs = parse_json_list(pick(payload, "storePhotos", "store_photos"))
        submitted_refs = [
            normalize_media_reference(reference)
            for reference in raw_photo_refs
            if isinstance(reference, str)
        ]
        retained_photos = [
            reference
            for reference in submitted_refs
            if reference and (is_external_reference(reference) or reference in existing_photos)
        ]
        if not has_any(payload, "storePhotos", "store_photos"):
            retained_photos = list(existing_photos)

        photo_files = request.files.getlist("storePhotos") if request.files else []
        saved_photos, upload_error = save_uploads(photo_files, IMAGE_EXTENSIONS, "store photo")
        if upload_error:
            return None, [], upload_error

        next_photos = unique_preserve(retained_photos + saved_photos)
        if len(next_photos) > MAX_STORE_PHOTOS:
            remove_upload(saved_photos)
            return None, [], f"You can keep up to {MAX_STORE_PHOTOS} store photos."

        store_details["store_photos"] = next_photos
        removed_photos = [photo for photo in existing_photos if photo not in next_photos]
        return store_details, removed_photos, None

    # --- Error envelopes ---

    @jwt.unauthorized_loader
    def handle_missing_token(reason: str):
        return fail("Authorization token is missing. Please sign in.", 401)

    @jwt.invalid_token_loader
    def handle_invalid_token(reason: str):
        return fail("Your session token is invalid. Please sign in again.", 401)

    @jwt.expired_token_loader
    def handle_expired_token(jwt_header, jwt_payload):
        return fail("Your session has expired. Please sign in again.", 401)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_upload_too_large(_error):
        limit_mb = int(app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return fail(f"Uploads are limited to {limit_mb} MB per request.", 413)

    @app.errorhandler(NotFound)
    def handle_not_found(_error):
        return fail("The requested resource was not found.", 404)

    @app.errorhandler(MethodNotAllowed)
    def handle_method_not_allowed(_error):
        return fail("This method is not allowed for the requested URL.", 405)

    # --- Authentication ---

    @app.route("/api/auth/register", methods=["POST"])
    def register():
        data = request.get_json(silent=True) or {}
        full_name = clean_text(pick(data, "fullName", "full_name", "name"), 120)
        email = normalize_email(data.get("email"))
        mobile_number = normalize_phone(pick(data, "mobileNumber", "mobile_number", "phone"))
        alternate_contact = normalize_phone(
            pick(data, "alternateContact", "alternate_contact")
        )
        password = str(data.get("password") or "")
        confirm_password = pick(data, "confirmPassword", "confirm_password")

        if not full_name or not email or not mobile_number or not password:
            return fail("Full name, email, mobile number and password are required.")

        if not is_valid_email(email):
            return fail("Please provide a valid email address.")

        if not mobile_regex.match(mobile_number):
            return fail("Mobile number must be a valid 10-digit number.")

        if alternate_contact and not contact_regex.match(alternate_contact):
            return fail("Alternate contact must be a valid phone number.")

        if len(password) < MIN_PASSWORD_LENGTH:
            return fail(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")

        if confirm_password is not None and str(confirm_password) != password:
            return fail("Passwords do not match.")

        existing_seller = db.sellers.find_one({"email": email})
        if existing_seller and existing_seller.get("email_verified"):
            return fail("An account with this email already exists. Please sign in.", 409)

        now = datetime.utcnow()
        account_fields = {
            "full_name": full_name,
            "mobile_number": mobile_number,
            "alternate_contact": alternate_contact,
            "password": hash_secret(password),
            "role": "admin" if email == default_admin_email else "seller",
            "updated_at": now,
        }

        if existing_seller:
            db.sellers.update_one({"_id": existing_seller["_id"]}, {"$set": account_fields})
            created_seller_id = None
        else:
            insert_result = db.sellers.insert_one(
                {
                    **account_fields,
                    "email": email,
                    "status": "pending-email-verification",
                    "email_verified": False,
                    "business_info": {},
                    "bank_details": {},
                    "documents": [],
                    "store_details": {},
                    "created_at": now,
                }
            )
            created_seller_id = insert_result.inserted_id

        otp_result = dispatch_otp_code(email, "verify-email", full_name)
        if not otp_result.get("success"):
            if created_seller_id is not None:
                db.sellers.delete_one({"_id": created_seller_id})
            return fail(
                "We could not send the verification code. Please try again later.", 502
            )

        record_audit_log(email, "seller_registered", {"email": email})

        return (
            jsonify(
                {
                    "success": True,
                    "message": "Verification code sent. Please check your email to continue.",
                    "email": email,
                    "sellerStatus": "pending-email-verification",
                    "requiresVerification": True,
                    **otp_delivery_details(otp_result),
                }
            ),
            201,
        )

    @app.route("/api/auth/verify-email", methods=["POST"])
    def verify_email():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))
        otp = str(pick(data, "otp", "code") or "").strip()

        if not email or not otp:
            return fail("Email and verification code are required.")

        seller_document = db.sellers.find_one({"email": email})
        if not seller_document:
            app.logger.warning("Verification attempted for unknown seller %s", email)
            return fail("No seller account found for this email.", 404)

        if seller_document.get("email_verified"):
            return fail("This email is already verified. Please sign in.", 409)

        otp_error = consume_otp_code(email, "verify-email", otp)
        if otp_error:
            return fail(otp_error)

        seller_document = mark_email_verified(seller_document)
        record_audit_log(email, "email_verified")

        return jsonify(build_session_payload(seller_document, "Email verified successfully.")), 200

    def mark_email_verified(seller_document):
        updates = {"email_verified": True, "verified_at": datetime.utcnow()}
        if seller_document.get("status") in (None, "", "pending-email-verification"):
            updates["status"] = (
                "active"
                if get_user_role(seller_document) == "admin"
                else "pending-business-info"
            )
        return save_seller_updates(seller_document, updates)

    @app.route("/api/auth/resend-otp", methods=["POST"])
    def resend_otp():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))
        purpose = str(data.get("purpose") or "verify-email").strip().lower()

        if not email:
            return fail("Email is required.")

        if purpose not in ("verify-email", "login"):
            return fail("Unsupported verification purpose.")

        seller_document = db.sellers.find_one({"email": email})
        if not seller_document:
            return fail("No seller account found for this email.", 404)

        if purpose == "verify-email" and seller_document.get("email_verified"):
            return fail("This email is already verified. Please sign in.", 409)

        otp_result = dispatch_otp_code(
            email, purpose, seller_document.get("full_name", "") or ""
        )
        if not otp_result.get("success"):
            return fail(
                "We could not send the verification code. Please try again later.", 502
            )

        return (
            jsonify(
                {
                    "success": True,
                    "message": "A new verification code has been sent to your email.",
                    **otp_delivery_details(otp_result),
                }
            ),
            200,
        )

    def reject_suspended(seller_document):
        if seller_document.get("status") == "suspended":
            return fail(
                "Your seller account is suspended. Please contact support.",
                403,
                sellerStatus="suspended",
            )
        return None

    def complete_sign_in(seller_document, method: str):
        seller_document = save_seller_updates(
            seller_document, {"last_login_at": datetime.utcnow()}
        )
        record_audit_log(seller_document.get("email"), "login", {"method": method})
        return jsonify(build_session_payload(seller_document, "Login successful.")), 200

    @app.route("/api/auth/login/password", methods=["POST"])
    def login_with_password():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))
        password = str(data.get("password") or "")

        if not email or not password:
            return fail("Email and password are required.")

        seller_document = db.sellers.find_one({"email": email})
        stored_password = as_bytes(seller_document.get("password")) if seller_document else b""
        if not stored_password or not bcrypt.checkpw(
            password.encode("utf-8"), stored_password
        ):
            return fail("Invalid email or password.", 401)

        if not seller_document.get("email_verified"):
            otp_result = dispatch_otp_code(
                email, "verify-email", seller_document.get("full_name", "") or ""
            )
            otp_sent = bool(otp_result.get("success"))
            return fail(
                "Please verify your email before signing in. We sent you a new code."
                if otp_sent
                else "Please verify your email before signing in.",
                403,
                requiresVerification=True,
                email=email,
                sellerStatus=seller_document.get("status"),
                otpSent=otp_sent,
            )

        suspended_error = reject_suspended(seller_document)
        if suspended_error:
            return suspended_error

        return complete_sign_in(seller_document, "password")

    @app.route("/api/auth/login/otp-request", methods=["POST"])
    def request_login_otp():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))

        if not email or not is_valid_email(email):
            return fail("Please provide a valid email address.")

        seller_document = db.sellers.find_one({"email": email})
        if not seller_document:
            return fail("No seller account found for this email.", 404)

        suspended_error = reject_suspended(seller_document)
        if suspended_error:
            return suspended_error

        otp_result = dispatch_otp_code(
            email, "login", seller_document.get("full_name", "") or ""
        )
        if not otp_result.get("success"):
            return fail("We could not send the login code. Please try again later.", 502)

        return (
            jsonify(
                {
                    "success": True,
                    "message": "Login code sent to your email.",
                    **otp_delivery_details(otp_result),
                }
            ),
            200,
        )

    @app.route("/api/auth/login/otp-verify", methods=["POST"])
    def verify_login_otp():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))
        otp = str(pick(data, "otp", "code") or "").strip()

        if not email or not otp:
            return fail("Email and login code are required.")

        seller_document = db.sellers.find_one({"email": email})
        if not seller_document:
            return fail("No seller account found for this email.", 404)

        suspended_error = reject_suspended(seller_document)
        if suspended_error:
            return suspended_error

        otp_error = consume_otp_code(email, "login", otp)
        if otp_error:
            return fail(otp_error)

        if not seller_document.get("email_verified"):
            seller_document = mark_email_verified(seller_document)
            record_audit_log(email, "email_verified", {"method": "login-otp"})

        return complete_sign_in(seller_document, "otp")

    @app.route("/api/auth/forgot-password", methods=["POST"])
    def forgot_password():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))

        if not email or not is_valid_email(email):
            return fail("Please provide a valid email address.")

        generic_response = {
            "success": True,
            "message": "If an account exists for this email, a reset code has been sent.",
        }

        seller_document = db.sellers.find_one({"email": email})
        if not seller_document:
            return jsonify(generic_response), 200

        otp_result = dispatch_otp_code(
            email, "password-reset", seller_document.get("full_name", "") or ""
        )
        if otp_result.get("success"):
            record_audit_log(email, "password_reset_requested")

        return jsonify(generic_response), 200

    @app.route("/api/auth/reset-password", methods=["POST"])
    def reset_password():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))
        otp = str(pick(data, "otp", "code") or "").strip()
        new_password = str(pick(data, "newPassword", "new_password", "password") or "")
        confirm_password = pick(data, "confirmPassword", "confirm_password")

        if not email or not otp or not new_password:
            return fail("Email, reset code and new password are required.")

        if len(new_password) < MIN_PASSWORD_LENGTH:
            return fail(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")

        if confirm_password is not None and str(confirm_password) != new_password:
            return fail("Passwords do not match.")

        otp_error = consume_otp_code(email, "password-reset", otp)
        if otp_error:
            return fail(otp_error)

        seller_document = db.sellers.find_one({"email": email})
        if not seller_document:
            app.logger.warning("Password reset code matched but no seller exists for %s", email)
            return fail("Invalid or expired reset code.")

        save_seller_updates(seller_document, {"password": hash_secret(new_password)})
        record_audit_log(email, "password_reset")

        return jsonify({"success": True, "message": "Password has been reset successfully."}), 200

    @app.route("/api/auth/check-auth", methods=["GET"])
    @jwt_required()
    def check_auth():
        seller_document, load_error = load_current_seller()
        if load_error:
            return load_error

        status = seller_document.get("status")
        return (
            jsonify(
                {
                    "success": True,
                    "authenticated": True,
                    "sellerStatus": status,
                    "onboardingStep": onboarding_step_for(status),
                    "seller": serialize_seller_summary(seller_document),
                }
            ),
            200,
        )

    @app.route("/api/auth/get-user", methods=["GET", "POST"])
    @jwt_required()
    def get_user():
        seller_document, load_error = load_current_seller()
        if load_error:
            return load_error

        return jsonify({"success": True, "seller": serialize_seller(seller_document)}), 200

    @app.route("/api/auth/dashboard-metrics", methods=["GET"])
    @jwt_required()
    def dashboard_metrics():
        seller_document, load_error = load_current_seller()
        if load_error:
            return load_error

        if get_user_role(seller_document) == "admin":
            scope: Dict = {}
        else:
            scope = {"seller_id": seller_document["_id"]}

        total_stock = 0
        out_of_stock_items = 0
        variant_count = 0
        for variant in db.variants.find(scope, {"stock": 1}):
            stock = safe_positive_int(variant.get("stock"), 0)
            variant_count += 1
            total_stock += stock
            if stock <= 0:
                out_of_stock_items += 1

        return (
            jsonify(
                {
                    "success": True,
                    "metrics": {
                        "productCount": db.products.count_documents(scope),
                        "publishedProductCount": db.products.count_documents(
                            {**scope, "status": "published"}
                        ),
                        "variantCount": variant_count,
                        "totalStock": total_stock,
                        "outOfStockItems": out_of_stock_items,
                        "categoryCount": db.categories.count_documents(scope),
                    },
                }
            ),
            200,
        )

    # --- Onboarding ---

    @app.route("/api/auth/business-info", methods=["PUT", "POST"])
    @jwt_required()
    def submit_business_info():
        seller_document, load_error = load_current_seller()
        if load_error:
            return load_error

        next_status, step_error = resolve_onboarding_step(
            seller_document, "pending-business-info"
        )
        if step_error:
            return step_error

        business_info, validation_error = normalize_business_info(read_request_payload())
        if validation_error:
            return fail(validation_error)

        updates: Dict = {"business_info": business_info}
        if next_status:
            updates["status"] = next_status
        seller_document = save_seller_updates(seller_document, updates)
        record_audit_log(seller_document.get("email"), "onboarding_business_info")

        return onboarding_response(seller_document, "Business information saved.")

    @app.route("/api/auth/bank-details", methods=["PUT", "POST"])
    @jwt_required()
    def submit_bank_details():
        seller_document, load_error = load_current_seller()
        if load_error:
            return load_error

        next_status, step_error = resolve_onboarding_step(
            seller_document, "pending-bank-details"
        )
        if step_error:
            return step_error

        bank_details, replaced_cheque, bank_error = apply_bank_details(
            seller_document, cheque_required=True
        )
        if bank_error:
            return fail(bank_error)

        updates: Dict = {"bank_details": bank_details}
        if next_status:
            updates["status"] = next_status
        seller_document = save_seller_updates(seller_document, updates)
        remove_upload(replaced_cheque)
        record_audit_log(seller_document.get("email"), "onboarding_bank_details")

        return onboarding_response(seller_document, "Bank details saved.")

    @app.route("/api/auth/documents", methods=["PUT", "POST"])
    @jwt_required()
    def submit_documents():
        seller_document, load_error = load_current_seller()
        if load_error:
            return load_error

        next_status, step_error = resolve_onboarding_step(
            seller_document, "pending-documents"
        )
        if step_error:
            return step_error

        documents, replaced_files, documents_error = apply_document_uploads(
            seller_document, require_any=True
        )
        if documents_error:
            return fail(documents_error)

        updates: Dict = {"documents": documents}
        if next_status:
            updates["status"] = next_status
        seller_document = save_seller_updates(seller_document, updates)
        remove_upload(replaced_files)
        record_audit_log(
            seller_document.get("email"),
            "onboarding_documents",
            {"documents": len(documents)},
        )

        return onboarding_response(seller_document, "Documents uploaded.")

    @app.route("/api/auth/store-details", methods=["PUT", "POST"])
    @jwt_required()
    def submit_store_details():
        seller_document, load_error = load_current_seller()
        if load_error:
            return load_error

        next_status, step_error = resolve_onboarding_step(
            seller_document, "pending-store-details"
        )
        if step_error:
            return step_error

        store_details, removed_photos, store_error = apply_store_details(seller_document)
        if store_error:
            return fail(store_error)

        updates: Dict = {"store_details": store_details}
        if next_status:
            updates["status"] = next_status
        seller_document = save_seller_updates(seller_document, updates)
        remove_upload(removed_photos)
        record_audit_log(seller_document.get("email"), "onboarding_store_details")

        return onboarding_response(
            seller_document,
            "Store details saved. Your application is now awaiting admin approval."
            if next_status == "pending-admin-approval"
            else "Store details saved.",
        )

    def onboarding_response(seller_document, message: str):
        status = seller_document.get("status")
        return (
            jsonify(
                {
                    "success": True,
                    "message": message,
                    "sellerStatus": status,
                    "onboardingStep": onboarding_step_for(status),
                    "seller": serialize_seller(seller_document),
                }
            ),
            200,
        )

    # --- Profile ---

    def profile_response(seller_document, message: str):
        return (
            jsonify(
                {
                    "success": True,
                    "message": message,
                    "seller": serialize_seller(seller_document),
                }
            ),
            200,
        )

    @app.route("/api/profile", methods=["GET"])
    @jwt_required()
    def get_profile():
        seller_document, load_error = require_verified_seller()
        if load_error:
            return load_error

        return jsonify({"success": True, "seller": serialize_seller(seller_document)}), 200

    @app.route("/api/profile/personal", methods=["PUT"])
    @jwt_required()
    def update_personal_profile():
        seller_document, load_error = require_verified_seller()
        if load_error:
            return load_error

        data = request.get_json(silent=True) or {}
        updates: Dict = {}

        if has_any(data, "fullName", "full_name", "name"):
            full_name = clean_text(pick(data, "fullName", "full_name", "name"), 120)
            if not full_name:
                return fail("Full name cannot be empty.")
            updates["full_name"] = full_name

        if has_any(data, "mobileNumber", "mobile_number", "phone"):
            mobile_number = normalize_phone(pick(data, "mobileNumber", "mobile_number", "phone"))
            if not mobile_regex.match(mobile_number):
                return fail("Mobile number must be a valid 10-digit number.")
            updates["mobile_number"] = mobile_number

        if has_any(data, "alternateContact", "alternate_contact"):
            alternate_contact = normalize_phone(
                pick(data, "alternateContact", "alternate_contact")
            )
            if alternate_contact and not contact_regex.match(alternate_contact):
                return fail("Alternate contact must be a valid phone number.")
            updates["alternate_contact"] = alternate_contact

        if not updates:
            return fail("No profile changes were provided.")

        seller_document = save_seller_updates(seller_document, updates)
        record_audit_log(
            seller_document.get("email"),
            "profile_personal_updated",
            {"fields": ",".join(sorted(updates.keys() - {"updated_at"}))},
        )
        return profile_response(seller_document, "Personal details updated.")

    @app.route("/api/profile/business", methods=["PUT"])
    @jwt_required()
    def update_business_profile():
        seller_document, load_error = require_verified_seller()
        if load_error:
            return load_error

        business_info, validation_error = normalize_business_info(read_request_payload())
        if validation_error:
            return fail(validation_error)

        seller_document = save_seller_updates(seller_document, {"business_info": business_info})
        record_audit_log(seller_document.get("email"), "profile_business_updated")
        return profile_response(seller_document, "Business information updated.")

    @app.route("/api/profile/bank", methods=["PUT"])
    @jwt_required()
    def update_bank_profile():
        seller_document, load_error = require_verified_seller()
        if load_error:
            return load_error

        bank_details, replaced_cheque, bank_error = apply_bank_details(
            seller_document, cheque_required=False
        )
        if bank_error:
            return fail(bank_error)

        seller_document = save_seller_updates(seller_document, {"bank_details": bank_details})
        remove_upload(replaced_cheque)
        record_audit_log(seller_document.get("email"), "profile_bank_updated")
        return profile_response(
            seller_document, "Bank details updated and sent for verification."
        )

    @app.route("/api/profile/store-details", methods=["PUT"])
    @jwt_required()
    def update_store_profile():
        seller_document, load_error = require_verified_seller()
        if load_error:
            return load_error

        store_details, removed_photos, store_error = apply_store_details(seller_document)
        if store_error:
            return fail(store_error)

        seller_document = save_seller_updates(seller_document, {"store_details": store_details})
        remove_upload(removed_photos)
        record_audit_log(seller_document.get("email"), "profile_store_updated")
        return profile_response(seller_document, "Store details updated.")

    @app.route("/api/profile/documents", methods=["PUT"])
    @jwt_required()
    def update_document_profile():
        seller_document, load_error = require_verified_seller()
        if load_error:
            return load_error

        documents, replaced_files, documents_error = apply_document_uploads(
            seller_document, require_any=False
        )
        if documents_error:
            return fail(documents_error)

        seller_document = save_seller_updates(seller_document, {"documents": documents})
        remove_upload(replaced_files)
        record_audit_log(seller_document.get("email"), "profile_documents_updated")
        return profile_response(seller_document, "Documents updated.")

    @app.route("/api/profile/password", methods=["PUT"])
    @jwt_required()
    def change_password():
        seller_document, load_error = require_verified_seller()
        if load_error:
            return load_error

        data = request.get_json(silent=True) or {}
        current_password = str(pick(data, "currentPassword", "current_password") or "")
        new_password = str(pick(data, "newPassword", "new_password") or "")
        confirm_password = pick(data, "confirmPassword", "confirm_password")

        if not current_password or not new_password:
            return fail("Current password and new password are required.")

        stored_password = as_bytes(seller_document.get("password"))
        if not stored_password or not bcrypt.checkpw(
            current_password.encode("utf-8"), stored_password
        ):
            return fail("Current password is incorrect.", 401)

        if len(new_password) < MIN_PASSWORD_LENGTH:
            return fail(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")

        if confirm_password is not None and str(confirm_password) != new_password:
            return fail("Passwords do not match.")

        if current_password == new_password:
            return fail("New password must be different from the current password.")

        save_seller_updates(seller_document, {"password": hash_secret(new_password)})
        record_audit_log(seller_document.get("email"), "password_changed")
        return jsonify({"success": True, "message": "Password updated successfully."}), 200

    # --- Catalog helpers ---

    CATEGORY_ATTRIBUTE_ALIASES = {
        "fssai_licence_number": ("fssaiLicenceNumber", "fssai_licence_number"),
        "return_policy": ("returnPolicy", "return_policy"),
        "origin": ("origin",),
        "customer_care_email": ("customerCareEmail", "customer_care_email"),
        "customer_care_phone": ("customerCarePhone", "customer_care_phone"),
        "manufacturer_name": ("manufacturerName", "manufacturer_name"),
        "product_warranty_info": ("productWarrantyInfo", "product_warranty_info"),
    }
    PRODUCT_ATTRIBUTE_ALIASES = {
        "fssai_number": ("fssaiNumber", "fssai_number", "fssaiLicenceNumber"),
        "origin": ("origin",),
        "manufacturer": ("manufacturer", "manufacturerName"),
        "return_policy": ("returnPolicy", "return_policy"),
        "customer_care_info": ("customerCareInfo", "customer_care_info"),
        "expiry_date": ("expiryDate", "expiry_date"),
    }
    # Category attribute -> product attribute it prefills.
    INHERITED_PRODUCT_ATTRIBUTES = {
        "fssai_licence_number": "fssai_number",
        "origin": "origin",
        "manufacturer_name": "manufacturer",
        "return_policy": "return_policy",
    }
    SHIPPING_DIMENSIONS = ("weight", "length", "width", "height")

    def catalog_scope(current_seller) -> Dict:
        if get_user_role(current_seller) == "admin":
            return {}
        return {"seller_id": current_seller["_id"]}

    def normalize_category_name(value: Optional[str]) -> str:
        if value is None:
            return ""
        return " ".join(str(value).split())

    def slugify_category_name(value: str) -> str:
        normalized = unicodedata.normalize("NFKD", value)
        ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
        slug = re.sub(r"[^a-z0-9]+", "-", ascii_value.lower()).strip("-")
        return slug or uuid4().hex[:8]

    def normalize_category_attributes(raw_value) -> Tuple[Optional[Dict], Optional[str]]:
        payload, ok = parse_json_object(raw_value)
        if not ok:
            return None, "Category attributes must be an object."

        attributes: Dict = {}
        for field, aliases in CATEGORY_ATTRIBUTE_ALIASES.items():
            attributes[field] = clean_text(pick(payload, *aliases), 1000)
        attributes["expiry_date_required"] = parse_bool(
            pick(payload, "expiryDateRequired", "expiry_date_required", default=False)
        )

        fssai_number = re.sub(r"\s", "", attributes["fssai_licence_number"])
        if fssai_number and not fssai_regex.match(fssai_number):
            return None, "FSSAI licence number must be 14 digits."
        attributes["fssai_licence_number"] = fssai_number

        care_email = normalize_email(attributes["customer_care_email"])
        if care_email and not is_valid_email(care_email):
            return None, "Customer care email must be a valid email address."
        attributes["customer_care_email"] = care_email

        care_phone = normalize_phone(attributes["customer_care_phone"])
        if care_phone and not contact_regex.match(care_phone):
            return None, "Customer care phone must be a valid phone number."
        attributes["customer_care_phone"] = care_phone

        return attributes, None

    def effective_category_attributes(category, parent=None) -> Dict:
        own = (category or {}).get("attributes") or {}
        inherited = (parent or {}).get("attributes") or {}
        merged: Dict = {}
        for field in CATEGORY_ATTRIBUTE_ALIASES:
            merged[field] = own.get(field) or inherited.get(field) or ""
        merged["expiry_date_required"] = bool(
            own.get("expiry_date_required") or inherited.get("expiry_date_required")
        )
        return merged

    def serialize_category_attributes(attributes: Optional[Dict]) -> Dict:
        attributes = attributes or {}
        serialized = {
            aliases[0]: attributes.get(field, "") or ""
            for field, aliases in CATEGORY_ATTRIBUTE_ALIASES.items()
        }
        serialized["expiryDateRequired"] = bool(attributes.get("expiry_date_required"))
        return serialized

    def build_category_product_counts(scope: Dict) -> Dict[str, int]:
        pipeline = [
            {"$match": scope},
            {"$group": {"_id": "$category_id", "count": {"$sum": 1}}},
        ]
        counts: Dict[str, int] = {}
        for entry in db.products.aggregate(pipeline):
            category_id = entry.get("_id")
            if category_id:
                counts[str(category_id)] = int(entry.get("count", 0))
        return counts

    def serialize_category(category_document, product_counts=None, parent=None):
        parent_id = category_document.get("parent_id")
        serialized = {
            "_id": str(category_document.get("_id")),
            "name": category_document.get("name", ""),
            "slug": category_document.get("slug", ""),
            "description": category_document.get("description", "") or "",
            "parentCategory": str(parent_id) if parent_id else None,
            "status": category_document.get("status") or "active",
            "attributes": serialize_category_attributes(category_document.get("attributes")),
            "sellerId": str(category_document.get("seller_id") or ""),
            "createdAt": format_timestamp(category_document.get("created_at")),
            "updatedAt": format_timestamp(category_document.get("updated_at")),
        }
        if product_counts is not None:
            serialized["productCount"] = product_counts.get(serialized["_id"], 0)
        if parent is not None:
            serialized["parentName"] = parent.get("name", "")
            serialized["inheritedAttributes"] = serialize_category_attributes(
                effective_category_attributes(category_document, parent)
            )
        return serialized

    def fetch_category(category_id: str, current_seller):
        category_object_id = normalize_object_id_value(category_id)
        if category_object_id is None:
            return None, fail("Invalid category id.")

        category_document = db.categories.find_one(
            {"_id": category_object_id, **catalog_scope(current_seller)}
        )
        if not category_document:
            return None, fail("Category not found.", 404)

        return category_document, None

    def resolve_parent_category(raw_value, owner_id, category_id=None):
        """Return ``(parent_document, error)``; no parent yields ``(None, None)``."""
        if isinstance(raw_value, dict):
            raw_value = raw_value.get("_id")
        candidate = str(raw_value or "").strip()
        if not candidate or candidate.lower() in {"null", "none"}:
            return None, None

        parent_object_id = normalize_object_id_value(candidate)
        if parent_object_id is None:
            return None, fail("Invalid parent category id.")

        if category_id is not None and parent_object_id == category_id:
            return None, fail("A category cannot be its own parent.")

        parent_document = db.categories.find_one(
            {"_id": parent_object_id, "seller_id": owner_id}
        )
        if not parent_document:
            return None, fail("Parent category not found.", 404)

        if parent_document.get("parent_id"):
            return None, fail(
                "Subcategories cannot have their own subcategories. Choose a top-level parent."
            )

        if category_id is not None and db.categories.count_documents(
            {"parent_id": category_id}
        ):
            return None, fail("A category with subcategories cannot be moved under a parent.")

        return parent_document, None

    def slug_taken(owner_id, slug: str, exclude_id=None) -> bool:
        query: Dict = {"seller_id": owner_id, "slug": slug}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return db.categories.count_documents(query) > 0

    def normalize_product_attributes(raw_value) -> Tuple[Optional[Dict], Optional[str]]:
        payload, ok = parse_json_object(raw_value)
        if not ok:
            return None, "Product attributes must be an object."

        attributes: Dict = {
            field: clean_text(pick(payload, *aliases), 1000)
            for field, aliases in PRODUCT_ATTRIBUTE_ALIASES.items()
        }

        if not attributes["customer_care_info"]:
            care_parts = [
                clean_text(pick(payload, "customerCareEmail", "customer_care_email"), 120),
                clean_text(pick(payload, "customerCarePhone", "customer_care_phone"), 30),
            ]
            attributes["customer_care_info"] = " / ".join(part for part in care_parts if part)

        fssai_number = re.sub(r"\s", "", attributes["fssai_number"])
        if fssai_number and not fssai_regex.match(fssai_number):
            return None, "FSSAI number must be 14 digits."
        attributes["fssai_number"] = fssai_number

        expiry_date = attributes["expiry_date"][:10]
        if expiry_date:
            try:
                datetime.strptime(expiry_date, "%Y-%m-%d")
            except ValueError:
                return None, "Expiry date must use the YYYY-MM-DD format."
        attributes["expiry_date"] = expiry_date

        return attributes, None

    def apply_category_rules(attributes: Dict, category_document, status: str):
        """Fill blank product attributes from the category and enforce expiry dates."""
        parent_document = None
        if category_document and category_document.get("parent_id"):
            parent_document = db.categories.find_one({"_id": category_document["parent_id"]})
        effective = effective_category_attributes(category_document, parent_document)

        filled = {field: attributes.get(field, "") or "" for field in PRODUCT_ATTRIBUTE_ALIASES}
        for category_field, product_field in INHERITED_PRODUCT_ATTRIBUTES.items():
            if not filled.get(product_field) and effective.get(category_field):
                filled[product_field] = effective[category_field]
        if not filled.get("customer_care_info"):
            care_info = " / ".join(
                part
                for part in (
                    effective.get("customer_care_email"),
                    effective.get("customer_care_phone"),
                )
                if part
            )
            filled["customer_care_info"] = care_info

        if effective["expiry_date_required"] and status != "draft" and not filled["expiry_date"]:
            return None, "This category requires an expiry date unless the product is a draft."

        return filled, None

    def normalize_shipping_details(raw_value) -> Tuple[Optional[Dict], Optional[str]]:
        payload, ok = parse_json_object(raw_value)
        if not ok:
            return None, "Shipping details must be an object."

        details: Dict = {}
        for dimension in SHIPPING_DIMENSIONS:
            value = payload.get(dimension)
            if value is None or str(value).strip() == "":
                details[dimension] = None
                continue
            numeric = safe_float(value, None)
            if numeric is None or numeric < 0:
                return None, f"Shipping {dimension} must be a non-negative number."
            details[dimension] = numeric
        details["fragile"] = parse_bool(payload.get("fragile"))
        details["perishable"] = parse_bool(payload.get("perishable"))
        return details, None

    def normalize_tags(raw_value) -> List[str]:
        tags: List[str] = []
        seen = set()
        for tag in parse_json_list(raw_value):
            if isinstance(tag, (dict, list)):
                continue
            cleaned = clean_text(tag, 40)
            key = cleaned.lower()
            if cleaned and key not in seen:
                seen.add(key)
                tags.append(cleaned)
        return tags[:30]

    def build_product_fields(payload: Dict, owner_id, existing=None):
        """Validate product scalar fields; a partial update only touches sent keys."""
        partial = existing is not None
        fields: Dict = {}

        if not partial or has_any(payload, "title"):
            title = clean_text(payload.get("title"), 200)
            if len(title) < 3:
                return None, fail("Product title must be at least 3 characters.")
            fields["title"] = title

        if not partial or has_any(payload, "brand"):
            fields["brand"] = clean_text(payload.get("brand"), 120)

        if not partial or has_any(payload, "description"):
            fields["description"] = str(payload.get("description") or "").strip()[:5000]

        if not partial or has_any(payload, "shortDescription", "short_description"):
            fields["short_description"] = clean_text(
                pick(payload, "shortDescription", "short_description"), 300
            )

        if not partial or has_any(payload, "categoryId", "category_id", "category"):
            raw_category = pick(payload, "categoryId", "category_id", "category")
            if isinstance(raw_category, dict):
                raw_category = raw_category.get("_id")
            category_object_id = (
                normalize_object_id_value(raw_category) if raw_category else None
            )
            if category_object_id is None:
                return None, fail("Please choose a valid category.")

            category_document = db.categories.find_one(
                {"_id": category_object_id, "seller_id": owner_id}
            )
            if not category_document:
                return None, fail("Category not found.", 404)

            category_changed = not partial or category_object_id != existing.get("category_id")
            if category_changed and category_document.get("status") != "active":
                return None, fail("This category is inactive. Choose an active category.")
            fields["category_id"] = category_object_id

        if not partial or has_any(payload, "tags"):
            fields["tags"] = normalize_tags(payload.get("tags"))

        if not partial or has_any(payload, "taxPercentage", "tax_percentage"):
            raw_tax = pick(payload, "taxPercentage", "tax_percentage")
            tax_percentage = (
                0.0 if raw_tax is None or str(raw_tax).strip() == "" else safe_float(raw_tax, None)
            )
            if tax_percentage is None or tax_percentage < 0 or tax_percentage > 100:
                return None, fail("Tax percentage must be between 0 and 100.")
            fields["tax_percentage"] = tax_percentage

        if not partial or has_any(payload, "hsnCode", "hsn_code"):
            hsn_code = re.sub(r"\s", "", str(pick(payload, "hsnCode", "hsn_code") or ""))
            if hsn_code and not hsn_regex.match(hsn_code):
                return None, fail("HSN code must contain 4 to 8 digits.")
            fields["hsn_code"] = hsn_code

        if not partial or has_any(payload, "status"):
            status = str(payload.get("status") or "draft").strip().lower()
            if status not in PRODUCT_STATUSES:
                return None, fail(f"Status must be one of: {', '.join(PRODUCT_STATUSES)}.")
            fields["status"] = status

        if not partial or has_any(payload, "shippingDetails", "shipping_details"):
            shipping_details, shipping_error = normalize_shipping_details(
                pick(payload, "shippingDetails", "shipping_details")
            )
            if shipping_error:
                return None, fail(shipping_error)
            fields["shipping_details"] = shipping_details

        if not partial or has_any(payload, "attributes"):
            attributes, attributes_error = normalize_product_attributes(payload.get("attributes"))
            if attributes_error:
                return None, fail(attributes_error)
            fields["attributes"] = attributes

        return fields, None

    def parse_variants_payload(raw_value):
        if isinstance(raw_value, list):
            return raw_value
        if isinstance(raw_value, str) and raw_value.strip():
            try:
                parsed = json.loads(raw_value)
            except (json.JSONDecodeError, ValueError):
                return None
            return parsed if isinstance(parsed, list) else None
        return []

    def normalize_variants_input(raw_value, owner_id, product_id=None):
        entries = parse_variants_payload(raw_value)
        if entries is None:
            return None, fail("Variants must be sent as a JSON list.")
        if not entries:
            return None, fail("Add at least one variant.")
        if len(entries) > MAX_PRODUCT_VARIANTS:
            return None, fail(f"A product can have at most {MAX_PRODUCT_VARIANTS} variants.")

        normalized: List[Dict] = []
        seen_skus: Set[str] = set()
        for index, entry in enumerate(entries, start=1):
            label = f"Variant {index}"
            if not isinstance(entry, dict):
                return None, fail(f"{label} is not a valid variant.")

            name = clean_text(entry.get("name"), 120)
            sku = clean_text(entry.get("sku"), 64).upper()
            if not name or not sku:
                return None, fail(f"{label}: name and SKU are required.")
            if sku in seen_skus:
                return None, fail(f"SKU {sku} is used more than once in this product.")
            seen_skus.add(sku)

            mrp = safe_float(entry.get("mrp"), None)
            if mrp is None or mrp <= 0:
                return None, fail(f"{label}: MRP must be greater than 0.")

            selling_price = safe_float(pick(entry, "sellingPrice", "selling_price"), None)
            if selling_price is None or selling_price <= 0:
                return None, fail(f"{label}: selling price must be greater than 0.")
            if selling_price > mrp:
                return None, fail(f"{label}: selling price cannot be higher than MRP.")

            stock = safe_float(entry.get("stock"), None)
            if stock is None or stock < 0 or not float(stock).is_integer():
                return None, fail(f"{label}: stock must be a whole number of 0 or more.")

            status = str(entry.get("status") or "active").strip().lower()
            if status not in VARIANT_STATUSES:
                return None, fail(f"{label}: status must be active or inactive.")

            raw_variant_id = pick(entry, "_id", "variantId")
            normalized.append(
                {
                    "variant_id": normalize_object_id_value(raw_variant_id)
                    if raw_variant_id
                    else None,
                    "name": name,
                    "sku": sku,
                    "barcode": clean_text(entry.get("barcode"), 64),
                    "mrp": round(mrp, 2),
                    "selling_price": round(selling_price, 2),
                    "stock": int(stock),
                    "lead_time": clean_text(pick(entry, "leadTime", "lead_time"), 60),
                    "status": status,
                }
            )

        conflict_query: Dict = {"seller_id": owner_id, "sku": {"$in": sorted(seen_skus)}}
        if product_id is not None:
            conflict_query["product_id"] = {"$ne": product_id}
        conflict = db.variants.find_one(conflict_query)
        if conflict:
            return None, fail(f"SKU {conflict.get('sku')} is already used by another product.", 409)

        return normalized, None

    def sync_product_variants(product_id, owner_id, variants: List[Dict]):
        existing_ids = {
            variant["_id"] for variant in db.variants.find({"product_id": product_id}, {"_id": 1})
        }
        kept_ids = set()
        now = datetime.utcnow()

        for entry in variants:
            variant_id = entry.get("variant_id")
            variant_fields = {key: value for key, value in entry.items() if key != "variant_id"}
            variant_fields["updated_at"] = now
            if variant_id in existing_ids and variant_id not in kept_ids:
                db.variants.update_one({"_id": variant_id}, {"$set": variant_fields})
                kept_ids.add(variant_id)
                continue

            insert_result = db.variants.insert_one(
                {
                    **variant_fields,
                    "product_id": product_id,
                    "seller_id": owner_id,
                    "created_at": now,
                }
            )
            kept_ids.add(insert_result.inserted_id)

        removed_ids = [variant_id for variant_id in existing_ids if variant_id not in kept_ids]
        if removed_ids:
            db.variants.delete_many({"_id": {"$in": removed_ids}})

    def compute_discount(mrp, selling_price) -> int:
        mrp_value = safe_float(mrp, 0.0)
        selling_value = safe_float(selling_price, 0.0)
        if mrp_value <= 0 or selling_value >= mrp_value:
            return 0
        return int(round((mrp_value - selling_value) / mrp_value * 100))

    def serialize_variant(variant_document):
        return {
            "_id": str(variant_document.get("_id")),
            "productId": str(variant_document.get("product_id") or ""),
            "name": variant_document.get("name", ""),
            "sku": variant_document.get("sku", ""),
            "barcode": variant_document.get("barcode", "") or "",
            "mrp": safe_float(variant_document.get("mrp"), 0.0),
            "sellingPrice": safe_float(variant_document.get("selling_price"), 0.0),
            "discount": compute_discount(
                variant_document.get("mrp"), variant_document.get("selling_price")
            ),
            "stock": safe_positive_int(variant_document.get("stock"), 0),
            "leadTime": variant_document.get("lead_time", "") or "",
            "status": variant_document.get("status") or "active",
        }

    def serialize_product(product_document, category_map=None, variants=None):
        category_id = product_document.get("category_id")
        category_document = (category_map or {}).get(category_id)
        attributes = product_document.get("attributes") or {}
        shipping = product_document.get("shipping_details") or {}

        serialized = {
            "_id": str(product_document.get("_id")),
            "title": product_document.get("title", ""),
            "brand": product_document.get("brand", "") or "",
            "description": product_document.get("description", "") or "",
            "shortDescription": product_document.get("short_description", "") or "",
            "category": (
                {"_id": str(category_id), "name": category_document.get("name", "")}
                if category_document
                else (str(category_id) if category_id else None)
            ),
            "categoryId": str(category_id) if category_id else None,
            "tags": list(product_document.get("tags") or []),
            "images": [
                build_upload_url(image) for image in product_document.get("images") or [] if image
            ],
            "attributes": {
                "fssaiNumber": attributes.get("fssai_number", "") or "",
                "origin": attributes.get("origin", "") or "",
                "manufacturer": attributes.get("manufacturer", "") or "",
                "returnPolicy": attributes.get("return_policy", "") or "",
                "customerCareInfo": attributes.get("customer_care_info", "") or "",
                "expiryDate": attributes.get("expiry_date") or None,
            },
            "shippingDetails": {
                **{dimension: shipping.get(dimension) for dimension in SHIPPING_DIMENSIONS},
                "fragile": bool(shipping.get("fragile")),
                "perishable": bool(shipping.get("perishable")),
            },
            "taxPercentage": safe_float(product_document.get("tax_percentage"), 0.0),
            "hsnCode": product_document.get("hsn_code", "") or "",
            "status": product_document.get("status") or "draft",
            "sellerId": str(product_document.get("seller_id") or ""),
            "createdAt": format_timestamp(product_document.get("created_at")),
            "updatedAt": format_timestamp(product_document.get("updated_at")),
        }
        if variants is not None:
            serialized_variants = [serialize_variant(variant) for variant in variants]
            serialized["variants"] = serialized_variants
            serialized["totalStock"] = sum(variant["stock"] for variant in serialized_variants)
        return serialized

    def fetch_product(product_id: str, current_seller):
        product_object_id = normalize_object_id_value(product_id)
        if product_object_id is None:
            return None, fail("Invalid product id.")

        product_document = db.products.find_one(
            {"_id": product_object_id, **catalog_scope(current_seller)}
        )
        if not product_document:
            return None, fail("Product not found.", 404)

        return product_document, None

    def load_product_variants(product_id) -> List[Dict]:
        return list(db.variants.find({"product_id": product_id}).sort("created_at", 1))

    def product_response(product_document, message: str, status_code: int = 200):
        category_map = {}
        if product_document.get("category_id"):
            category_document = db.categories.find_one({"_id": product_document["category_id"]})
            if category_document:
                category_map[category_document["_id"]] = category_document
        variants = [serialize_variant(variant) for variant in load_product_variants(product_document["_id"])]
        return (
            jsonify(
                {
                    "success": True,
                    "message": message,
                    "product": serialize_product(product_document, category_map),
                    "variants": variants,
                }
            ),
            status_code,
        )

    def incoming_image_files() -> List:
        if not request.files:
            return []
        return [
            upload
            for upload in request.files.getlist("images")
            if upload and getattr(upload, "filename", "")
        ]

    # --- Categories ---

    @app.route("/api/category/all", methods=["GET"])
    @jwt_required()
    def list_categories():
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        scope = catalog_scope(current_seller)
        query: Dict = dict(scope)

        status_filter = (request.args.get("status") or "").strip().lower()
        if status_filter:
            if status_filter not in CATEGORY_STATUSES:
                return fail("Status filter must be active or inactive.")
            query["status"] = status_filter

        search_term = (request.args.get("search") or "").strip()
        if search_term:
            query["name"] = {"$regex": re.escape(search_term), "$options": "i"}

        product_counts = build_category_product_counts(scope)
        categories = [
            serialize_category(category, product_counts)
            for category in db.categories.find(query).sort("name", 1)
        ]

        return jsonify({"success": True, "categories": categories, "total": len(categories)}), 200

    @app.route("/api/category/get/<category_id>", methods=["GET"])
    @jwt_required()
    def get_category(category_id: str):
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        category_document, fetch_error = fetch_category(category_id, current_seller)
        if fetch_error:
            return fetch_error

        parent_document = None
        if category_document.get("parent_id"):
            parent_document = db.categories.find_one({"_id": category_document["parent_id"]})

        serialized = serialize_category(
            category_document,
            build_category_product_counts({"category_id": category_document["_id"]}),
            parent_document or {},
        )
        if not parent_document:
            serialized["parentName"] = None
        serialized["subcategoryCount"] = db.categories.count_documents(
            {"parent_id": category_document["_id"]}
        )

        return jsonify({"success": True, "category": serialized}), 200

    @app.route("/api/category/create", methods=["POST"])
    @jwt_required()
    def create_category():
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        payload = request.get_json(silent=True) or {}
        owner_id = current_seller["_id"]

        name = normalize_category_name(payload.get("name"))
        if len(name) < 2:
            return fail("Category name must be at least 2 characters.")
        if len(name) > 80:
            return fail("Category name must be 80 characters or fewer.")

        status = str(payload.get("status") or "active").strip().lower()
        if status not in CATEGORY_STATUSES:
            return fail("Status must be active or inactive.")

        attributes, attributes_error = normalize_category_attributes(payload.get("attributes"))
        if attributes_error:
            return fail(attributes_error)

        parent_document, parent_error = resolve_parent_category(
            pick(payload, "parentCategory", "parent_category", "parentId"), owner_id
        )
        if parent_error:
            return parent_error

        slug = slugify_category_name(name)
        if slug_taken(owner_id, slug):
            return fail("A category with this name already exists.", 409)

        now = datetime.utcnow()
        category_document = {
            "seller_id": owner_id,
            "name": name,
            "slug": slug,
            "description": str(payload.get("description") or "").strip()[:1000],
            "parent_id": parent_document["_id"] if parent_document else None,
            "status": status,
            "attributes": attributes,
            "created_at": now,
            "updated_at": now,
        }
        insert_result = db.categories.insert_one(category_document)
        category_document["_id"] = insert_result.inserted_id

        record_audit_log(
            current_seller.get("email"),
            "category_created",
            {"category_id": insert_result.inserted_id, "name": name},
        )

        return (
            jsonify(
                {
                    "success": True,
                    "message": "Category created successfully.",
                    "category": serialize_category(category_document, {}),
                }
            ),
            201,
        )

    @app.route("/api/category/update/<category_id>", methods=["PUT"])
    @jwt_required()
    def update_category(category_id: str):
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        category_document, fetch_error = fetch_category(category_id, current_seller)
        if fetch_error:
            return fetch_error

        payload = request.get_json(silent=True) or {}
        owner_id = category_document.get("seller_id")
        updates: Dict = {}

        if has_any(payload, "name"):
            name = normalize_category_name(payload.get("name"))
            if len(name) < 2:
                return fail("Category name must be at least 2 characters.")
            if len(name) > 80:
                return fail("Category name must be 80 characters or fewer.")
            slug = slugify_category_name(name)
            if slug_taken(owner_id, slug, exclude_id=category_document["_id"]):
                return fail("A category with this name already exists.", 409)
            updates["name"] = name
            updates["slug"] = slug

        if has_any(payload, "description"):
            updates["description"] = str(payload.get("description") or "").strip()[:1000]

        if has_any(payload, "status"):
            status = str(payload.get("status") or "").strip().lower()
            if status not in CATEGORY_STATUSES:
                return fail("Status must be active or inactive.")
            updates["status"] = status

        if has_any(payload, "attributes"):
            attributes, attributes_error = normalize_category_attributes(payload.get("attributes"))
            if attributes_error:
                return fail(attributes_error)
            updates["attributes"] = attributes

        if has_any(payload, "parentCategory", "parent_category", "parentId"):
            parent_document, parent_error = resolve_parent_category(
                pick(payload, "parentCategory", "parent_category", "parentId"),
                owner_id,
                category_id=category_document["_id"],
            )
            if parent_error:
                return parent_error
            updates["parent_id"] = parent_document["_id"] if parent_document else None

        if not updates:
            return fail("No category changes were provided.")

        updates["updated_at"] = datetime.utcnow()
        db.categories.update_one({"_id": category_document["_id"]}, {"$set": updates})
        updated_category = db.categories.find_one({"_id": category_document["_id"]})

        record_audit_log(
            current_seller.get("email"),
            "category_updated",
            {"category_id": category_document["_id"], "name": updated_category.get("name")},
        )

        return (
            jsonify(
                {
                    "success": True,
                    "message": "Category updated successfully.",
                    "category": serialize_category(
                        updated_category,
                        build_category_product_counts(
                            {"category_id": category_document["_id"]}
                        ),
                    ),
                }
            ),
            200,
        )

    @app.route("/api/category/delete/<category_id>", methods=["DELETE"])
    @jwt_required()
    def delete_category(category_id: str):
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        category_document, fetch_error = fetch_category(category_id, current_seller)
        if fetch_error:
            return fetch_error

        subcategory_count = db.categories.count_documents({"parent_id": category_document["_id"]})
        if subcategory_count:
            return fail(
                f"This category has {subcategory_count} subcategories. "
                "Move or delete them before deleting it.",
                409,
            )

        product_count = db.products.count_documents({"category_id": category_document["_id"]})
        if product_count:
            return fail(
                f"This category is used by {product_count} products. "
                "Move them to another category before deleting it.",
                409,
            )

        db.categories.delete_one({"_id": category_document["_id"]})
        record_audit_log(
            current_seller.get("email"),
            "category_deleted",
            {"category_id": category_document["_id"], "name": category_document.get("name")},
        )

        return jsonify({"success": True, "message": "Category deleted successfully."}), 200

    # --- Products ---

    @app.route("/api/product/all", methods=["GET"])
    @jwt_required()
    def list_products():
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        query: Dict = dict(catalog_scope(current_seller))

        status_filter = (request.args.get("status") or "").strip().lower()
        if status_filter:
            if status_filter not in PRODUCT_STATUSES:
                return fail(f"Status filter must be one of: {', '.join(PRODUCT_STATUSES)}.")
            query["status"] = status_filter

        category_filter = (request.args.get("category") or "").strip()
        if category_filter:
            category_object_id = normalize_object_id_value(category_filter)
            if category_object_id is None:
                return fail("Invalid category id.")
            category_ids = [category_object_id] + [
                child["_id"]
                for child in db.categories.find({"parent_id": category_object_id}, {"_id": 1})
            ]
            query["category_id"] = {"$in": category_ids}

        search_term = (request.args.get("search") or "").strip()
        if search_term:
            pattern = {"$regex": re.escape(search_term), "$options": "i"}
            query["$or"] = [{"title": pattern}, {"brand": pattern}, {"tags": pattern}]

        products = list(db.products.find(query).sort("created_at", -1))
        product_ids = [product["_id"] for product in products]

        variants_by_product: Dict = {}
        if product_ids:
            for variant in db.variants.find({"product_id": {"$in": product_ids}}).sort(
                "created_at", 1
            ):
                variants_by_product.setdefault(variant["product_id"], []).append(variant)

        category_ids = list({product["category_id"] for product in products if product.get("category_id")})
        category_map = {}
        if category_ids:
            category_map = {
                category["_id"]: category
                for category in db.categories.find({"_id": {"$in": category_ids}})
            }

        serialized = [
            serialize_product(product, category_map, variants_by_product.get(product["_id"], []))
            for product in products
        ]

        return jsonify({"success": True, "products": serialized, "total": len(serialized)}), 200

    @app.route("/api/product/get/<product_id>", methods=["GET"])
    @jwt_required()
    def get_product(product_id: str):
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        product_document, fetch_error = fetch_product(product_id, current_seller)
        if fetch_error:
            return fetch_error

        return product_response(product_document, "Product loaded.")

    @app.route("/api/product/create", methods=["POST"])
    @jwt_required()
    def create_product():
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        payload = read_request_payload()
        owner_id = current_seller["_id"]

        fields, fields_error = build_product_fields(payload, owner_id)
        if fields_error:
            return fields_error

        variants, variants_error = normalize_variants_input(payload.get("variants"), owner_id)
        if variants_error:
            return variants_error

        category_document = db.categories.find_one({"_id": fields["category_id"]})
        attributes, rule_error = apply_category_rules(
            fields.get("attributes") or {}, category_document, fields["status"]
        )
        if rule_error:
            return fail(rule_error)
        fields["attributes"] = attributes

        external_images, parsed = resolve_retained_media(
            pick(payload, "existingImages", "imageUrls", "image_urls"), []
        )
        if not parsed:
            return fail("Existing images must be sent as a JSON list.")

        image_uploads = incoming_image_files()
        if len(external_images) + len(image_uploads) > MAX_PRODUCT_IMAGES:
            return fail(f"A product can have at most {MAX_PRODUCT_IMAGES} images.")
        if fields["status"] == "published" and not (external_images or image_uploads):
            return fail("Add at least one image before publishing the product.")

        saved_images, upload_error = save_uploads(image_uploads, IMAGE_EXTENSIONS, "product image")
        if upload_error:
            return fail(upload_error)

        now = datetime.utcnow()
        product_document = {
            **fields,
            "seller_id": owner_id,
            "images": unique_preserve(external_images + saved_images),
            "created_at": now,
            "updated_at": now,
        }
        insert_result = db.products.insert_one(product_document)
        product_document["_id"] = insert_result.inserted_id

        sync_product_variants(insert_result.inserted_id, owner_id, variants)

        record_audit_log(
            current_seller.get("email"),
            "product_created",
            {
                "product_id": insert_result.inserted_id,
                "title": product_document.get("title"),
                "variants": len(variants),
            },
        )

        return product_response(product_document, "Product created successfully.", 201)

    @app.route("/api/product/update/<product_id>", methods=["PUT"])
    @jwt_required()
    def update_product(product_id: str):
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        product_document, fetch_error = fetch_product(product_id, current_seller)
        if fetch_error:
            return fetch_error

        payload = read_request_payload()
        owner_id = product_document.get("seller_id")

        fields, fields_error = build_product_fields(payload, owner_id, existing=product_document)
        if fields_error:
            return fields_error

        variants = None
        if has_any(payload, "variants"):
            variants, variants_error = normalize_variants_input(
                payload.get("variants"), owner_id, product_id=product_document["_id"]
            )
            if variants_error:
                return variants_error

        final_status = fields.get("status", product_document.get("status") or "draft")
        category_document = db.categories.find_one(
            {"_id": fields.get("category_id", product_document.get("category_id"))}
        )
        attributes, rule_error = apply_category_rules(
            fields.get("attributes", product_document.get("attributes") or {}),
            category_document,
            final_status,
        )
        if rule_error:
            return fail(rule_error)
        fields["attributes"] = attributes

        existing_images = [str(image) for image in product_document.get("images") or [] if image]
        if has_any(payload, "existingImages", "existing_images", "retainImages"):
            retained_images, parsed = resolve_retained_media(
                pick(payload, "existingImages", "existing_images", "retainImages"),
                existing_images,
            )
            if not parsed:
                return fail("Existing images must be sent as a JSON list.")
        else:
            retained_images = list(existing_images)

        image_uploads = incoming_image_files()
        if len(retained_images) + len(image_uploads) > MAX_PRODUCT_IMAGES:
            return fail(f"A product can have at most {MAX_PRODUCT_IMAGES} images.")
        if final_status == "published" and not (retained_images or image_uploads):
            return fail("Add at least one image before publishing the product.")

        saved_images, upload_error = save_uploads(image_uploads, IMAGE_EXTENSIONS, "product image")
        if upload_error:
            return fail(upload_error)

        next_images = unique_preserve(retained_images + saved_images)
        fields["images"] = next_images
        fields["updated_at"] = datetime.utcnow()

        db.products.update_one({"_id": product_document["_id"]}, {"$set": fields})
        if variants is not None:
            sync_product_variants(product_document["_id"], owner_id, variants)

        remove_upload([image for image in existing_images if image not in next_images])

        updated_product = db.products.find_one({"_id": product_document["_id"]})
        record_audit_log(
            current_seller.get("email"),
            "product_updated",
            {"product_id": product_document["_id"], "title": updated_product.get("title")},
        )

        return product_response(updated_product, "Product updated successfully.")

    @app.route("/api/product/delete/<product_id>", methods=["DELETE"])
    @jwt_required()
    def delete_product(product_id: str):
        current_seller, access_error = require_active_seller()
        if access_error:
            return access_error

        product_document, fetch_error = fetch_product(product_id, current_seller)
        if fetch_error:
            return fetch_error

        deleted_variants = db.variants.delete_many({"product_id": product_document["_id"]})
        db.products.delete_one({"_id": product_document["_id"]})
        remove_upload(product_document.get("images") or [])

        record_audit_log(
            current_seller.get("email"),
            "product_deleted",
            {
                "product_id": product_document["_id"],
                "title": product_document.get("title"),
                "variants": deleted_variants.deleted_count,
            },
        )

        return jsonify({"success": True, "message": "Product deleted successfully."}), 200

    # --- Administration ---

    def fetch_seller_for_admin(seller_id: str):
        seller_object_id = normalize_object_id_value(seller_id)
        if seller_object_id is None:
            return None, fail("Invalid seller id.")

        seller_document = db.sellers.find_one({"_id": seller_object_id})
        if not seller_document:
            return None, fail("Seller not found.", 404)

        return seller_document, None

    def read_verification_status(payload: Dict) -> str:
        value = str(pick(payload, "verificationStatus", "verification_status", "status") or "")
        value = value.strip().lower()
        return value if value in VERIFICATION_STATES else ""

    @app.route("/api/admin/sellers", methods=["GET"])
    @jwt_required()
    def admin_list_sellers():
        _, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        page, limit = read_pagination()
        query: Dict[str, object] = {}

        status_filter = (request.args.get("status") or "").strip().lower()
        if status_filter:
            if status_filter not in SELLER_STATUSES:
                return fail("Unknown seller status filter.")
            query["status"] = status_filter

        search_term = (request.args.get("search") or "").strip()
        if search_term:
            pattern = {"$regex": re.escape(search_term), "$options": "i"}
            query["$or"] = [
                {"email": pattern},
                {"full_name": pattern},
                {"business_info.business_name": pattern},
                {"store_details.store_name": pattern},
            ]

        skip = (page - 1) * limit
        cursor = db.sellers.find(query).sort("created_at", -1).skip(skip).limit(limit)
        sellers = [serialize_seller(document, include_admin_fields=True) for document in cursor]
        total = db.sellers.count_documents(query)

        return (
            jsonify(
                {
                    "success": True,
                    "sellers": sellers,
                    "pagination": {
                        "page": page,
                        "limit": limit,
                        "total": total,
                        "pages": math.ceil(total / limit) if total else 0,
                    },
                }
            ),
            200,
        )

    @app.route("/api/admin/sellers/<seller_id>", methods=["GET"])
    @jwt_required()
    def admin_get_seller(seller_id: str):
        _, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        seller_document, fetch_error = fetch_seller_for_admin(seller_id)
        if fetch_error:
            return fetch_error

        scope = {"seller_id": seller_document["_id"]}
        return (
            jsonify(
                {
                    "success": True,
                    "seller": serialize_seller(seller_document, include_admin_fields=True),
                    "catalog": {
                        "productCount": db.products.count_documents(scope),
                        "categoryCount": db.categories.count_documents(scope),
                    },
                }
            ),
            200,
        )

    @app.route("/api/admin/sellers/<seller_id>/status", methods=["PUT"])
    @jwt_required()
    def admin_update_seller_status(seller_id: str):
        admin_user, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        seller_document, fetch_error = fetch_seller_for_admin(seller_id)
        if fetch_error:
            return fetch_error

        payload = request.get_json(silent=True) or {}
        target_status = str(payload.get("status") or "").strip().lower()
        reason = clean_text(payload.get("reason"), 500)

        if target_status not in ADMIN_ASSIGNABLE_STATUSES:
            return fail(f"Status must be one of: {', '.join(ADMIN_ASSIGNABLE_STATUSES)}.")

        if get_user_role(seller_document) == "admin":
            return fail("Administrator accounts cannot be moderated.", 403)

        current_status = seller_document.get("status")
        if flow_position(current_status) < ONBOARDING_FLOW.index("pending-admin-approval"):
            pending_label = ONBOARDING_STEP_LABELS.get(current_status, "onboarding")
            return fail(
                f"This seller has not finished onboarding yet (pending {pending_label}).",
                409,
                sellerStatus=current_status,
            )

        if target_status in ("rejected", "suspended") and not reason:
            return fail("Please provide a reason for this decision.")

        if target_status == current_status:
            return fail(f"The seller is already {target_status}.", 409)

        updates: Dict = {"status": target_status, "status_reason": reason or None}
        if target_status == "active":
            updates["approved_at"] = datetime.utcnow()
        seller_document = save_seller_updates(seller_document, updates)

        email_sent = False
        if target_status in ("active", "rejected", "suspended"):
            email_sent, email_error = send_seller_status_email(
                seller_document, target_status, reason
            )
            if not email_sent:
                app.logger.error(
                    "Failed to send status email to %s: %s",
                    seller_document.get("email"),
                    email_error,
                )

        record_audit_log(
            admin_user.get("email"),
            "seller_status_changed",
            {
                "seller_email": seller_document.get("email"),
                "from": current_status,
                "to": target_status,
                "reason": reason or None,
            },
        )

        return (
            jsonify(
                {
                    "success": True,
                    "message": f"Seller status updated to {target_status}.",
                    "emailSent": email_sent,
                    "seller": serialize_seller(seller_document, include_admin_fields=True),
                }
            ),
            200,
        )

    @app.route("/api/admin/sellers/<seller_id>/documents/<document_id>", methods=["PUT"])
    @jwt_required()
    def admin_verify_document(seller_id: str, document_id: str):
        admin_user, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        seller_document, fetch_error = fetch_seller_for_admin(seller_id)
        if fetch_error:
            return fetch_error

        verification_status = read_verification_status(request.get_json(silent=True) or {})
        if not verification_status:
            return fail("Verification status must be pending, verified or rejected.")

        documents = [
            dict(document)
            for document in seller_document.get("documents") or []
            if isinstance(document, dict)
        ]
        target = next(
            (document for document in documents if str(document.get("id")) == document_id),
            None,
        )
        if not target:
            return fail("Document not found.", 404)

        target["verification_status"] = verification_status
        target["reviewed_at"] = datetime.utcnow()
        seller_document = save_seller_updates(seller_document, {"documents": documents})

        record_audit_log(
            admin_user.get("email"),
            "seller_document_reviewed",
            {
                "seller_email": seller_document.get("email"),
                "doc_type": target.get("doc_type"),
                "status": verification_status,
            },
        )

        return (
            jsonify(
                {
                    "success": True,
                    "message": f"{target.get('doc_type', 'Document')} marked as {verification_status}.",
                    "document": serialize_document(target),
                }
            ),
            200,
        )

    @app.route("/api/admin/sellers/<seller_id>/bank-verification", methods=["PUT"])
    @jwt_required()
    def admin_verify_bank_details(seller_id: str):
        admin_user, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        seller_document, fetch_error = fetch_seller_for_admin(seller_id)
        if fetch_error:
            return fetch_error

        if not seller_document.get("bank_details"):
            return fail("This seller has not submitted bank details yet.", 409)

        verification_status = read_verification_status(request.get_json(silent=True) or {})
        if not verification_status:
            return fail("Verification status must be pending, verified or rejected.")

        seller_document = save_seller_updates(
            seller_document, {"bank_details.verification_status": verification_status}
        )

        record_audit_log(
            admin_user.get("email"),
            "seller_bank_reviewed",
            {"seller_email": seller_document.get("email"), "status": verification_status},
        )

        return (
            jsonify(
                {
                    "success": True,
                    "message": f"Bank details marked as {verification_status}.",
                    "bankDetails": serialize_bank_details(seller_document.get("bank_details")),
                }
            ),
            200,
        )

    @app.route("/api/admin/logs", methods=["GET"])
    @jwt_required()
    def admin_list_logs():
        _, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        search_term = (request.args.get("search") or "").strip()
        start_param = request.args.get("start") or request.args.get("from")
        end_param = request.args.get("end") or request.args.get("to")
        page, limit = read_pagination()

        query: Dict[str, object] = {}
        if search_term:
            pattern = {"$regex": re.escape(search_term), "$options": "i"}
            query["$or"] = [
                {"user_email": pattern},
                {"user_name": pattern},
                {"action": pattern},
            ]

        created_filter = build_date_range_filter(start_param, end_param)
        if created_filter:
            query["created_at"] = created_filter

        skip = (page - 1) * limit
        cursor = audit_logs_collection.find(query).sort("created_at", -1).skip(skip).limit(limit)
        logs = [serialize_audit_log(document) for document in cursor]
        total = audit_logs_collection.count_documents(query)

        return jsonify(
            {
                "success": True,
                "logs": logs,
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "pages": math.ceil(total / limit) if total else 0,
                },
            }
        )

    @app.route("/api/admin/logs", methods=["DELETE"])
    @jwt_required()
    def admin_delete_logs():
        admin_user, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        payload = request.get_json(silent=True) or {}
        created_filter = build_date_range_filter(
            payload.get("from") or payload.get("start"),
            payload.get("to") or payload.get("end"),
        )
        delete_query: Dict[str, object] = {"created_at": created_filter} if created_filter else {}

        result = audit_logs_collection.delete_many(delete_query)

        record_audit_log(
            admin_user.get("email"),
            "audit_logs_deleted",
            {
                "count": str(result.deleted_count),
                "range": "filtered" if delete_query else "all",
            },
        )

        return jsonify(
            {
                "success": True,
                "message": f"Removed {result.deleted_count} audit log entries.",
                "deleted": result.deleted_count,
            }
        )

    # --- Misc ---

    @app.route("/uploads/<path:filename>")
    def serve_uploaded_file(filename: str):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    @app.route("/")
    def index():
        return f"{BRAND_NAME} seller panel API is running."

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    return app
