"""Shared fixtures for the seller panel API tests."""

import io
import re
from datetime import datetime
from unittest.mock import patch

import bcrypt
import mongomock
import pytest
from flask_jwt_extended import create_access_token

from backend.app import create_app

ADMIN_EMAIL = "admin@example.com"
SELLER_PASSWORD = "Password123"


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient().seller_panel_test


@pytest.fixture
def sent_emails():
    outbox = []

    def capture(payload):
        outbox.append(payload)
        return {"id": f"email_{len(outbox)}"}

    with patch("resend.Emails.send", side_effect=capture):
        yield outbox


@pytest.fixture
def upload_folder(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def app(mongo_db, upload_folder, sent_emails):
    return create_app(
        config_overrides={
            "TESTING": True,
            "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
            "UPLOAD_FOLDER": str(upload_folder),
            "RESEND_API_KEY": "re_test_key",
            "DEFAULT_ADMIN_EMAIL": ADMIN_EMAIL,
        },
        mongo_database=mongo_db,
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def latest_otp(sent_emails):
    def read(recipient=None):
        for payload in reversed(sent_emails):
            if recipient is None or recipient in payload["to"]:
                match = re.search(r"\b(\d{6})\b", payload["text"])
                if match:
                    return match.group(1)
        raise AssertionError("No verification code was emailed")

    return read


@pytest.fixture
def make_seller(mongo_db):
    def factory(
        email="seller@example.com",
        status="active",
        verified=True,
        password=SELLER_PASSWORD,
        **extra,
    ):
        now = datetime.utcnow()
        document = {
            "email": email,
            "full_name": "Asha Traders",
            "mobile_number": "9876543210",
            "alternate_contact": "",
            "password": bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)),
            "role": "admin" if email == ADMIN_EMAIL else "seller",
            "status": status,
            "email_verified": verified,
            "business_info": {},
            "bank_details": {},
            "documents": [],
            "store_details": {},
            "created_at": now,
            "updated_at": now,
        }
        document.update(extra)
        mongo_db.sellers.insert_one(document)
        return document

    return factory


@pytest.fixture
def auth_headers(app):
    def build(email="seller@example.com"):
        with app.app_context():
            token = create_access_token(identity=email)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def business_info_payload():
    return {
        "businessName": "Fresh Basket Foods",
        "legalName": "Fresh Basket Foods Pvt Ltd",
        "businessType": "Private Ltd",
        "gstNumber": "27ABCDE1234F1Z5",
        "panNumber": "ABCDE1234F",
        "businessAddress": {
            "addressLine1": "12 Market Road",
            "city": "Pune",
            "state": "Maharashtra",
            "pincode": "411001",
        },
        "businessContact": "02012345678",
        "businessEmail": "accounts@freshbasket.in",
    }


@pytest.fixture
def bank_form():
    def build(with_cheque=True, **overrides):
        form = {
            "accountHolderName": "Fresh Basket Foods",
            "bankName": "HDFC Bank",
            "branchName": "Pune Camp",
            "accountNumber": "123456789012",
            "ifscCode": "HDFC0001234",
        }
        form.update(overrides)
        if with_cheque:
            form["cancelledCheque"] = (io.BytesIO(b"%PDF-1.4 cheque"), "cheque.pdf")
        return form

    return build


@pytest.fixture
def store_details_payload():
    return {
        "storeName": "Fresh Basket Camp",
        "storeAddress": {
            "addressLine1": "4 Camp Street",
            "addressLine2": "Near Clock Tower",
            "city": "Pune",
            "state": "Maharashtra",
            "pincode": "411002",
        },
        "storeType": "Dark Store",
        "storeTimings": {"open": "08:00", "close": "22:00"},
        "fssaiLicenceNumber": "12345678901234",
        "storeContactNumber": "+91 98765 43210",
        "coveredDeliveryAreas": "411001, 411002, Koregaon Park",
    }
