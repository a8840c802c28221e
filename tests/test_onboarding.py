"""Tests for the multi-step seller onboarding flow."""

import io
import os

import pytest


class TestOnboardingFlow:
    def test_full_flow_reaches_admin_approval(
        self,
        client,
        make_seller,
        auth_headers,
        business_info_payload,
        bank_form,
        store_details_payload,
        mongo_db,
    ):
        """Test every step advances the seller to the next status."""
        make_seller(status="pending-business-info")
        headers = auth_headers()

        response = client.put("/api/auth/business-info", json=business_info_payload, headers=headers)
        assert response.status_code == 200
        assert response.get_json()["sellerStatus"] == "pending-bank-details"

        response = client.put(
            "/api/auth/bank-details",
            data=bank_form(),
            headers=headers,
            content_type="multipart/form-data",
        )
        assert response.status_code == 200
        assert response.get_json()["sellerStatus"] == "pending-documents"

        response = client.put(
            "/api/auth/documents",
            data={
                "panCard": (io.BytesIO(b"%PDF-1.4 pan"), "pan.pdf"),
                "gstCertificate": (io.BytesIO(b"png-bytes"), "gst.png"),
            },
            headers=headers,
            content_type="multipart/form-data",
        )
        assert response.status_code == 200
        assert response.get_json()["sellerStatus"] == "pending-store-details"

        response = client.put("/api/auth/store-details", json=store_details_payload, headers=headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["sellerStatus"] == "pending-admin-approval"
        assert body["onboardingStep"] == 7

        seller = mongo_db.sellers.find_one({"email": "seller@example.com"})
        assert seller["business_info"]["pan_number"] == "ABCDE1234F"
        assert seller["bank_details"]["ifsc_code"] == "HDFC0001234"
        assert {document["doc_type"] for document in seller["documents"]} == {
            "PAN Card",
            "GST Certificate",
        }
        assert seller["store_details"]["covered_delivery_areas"] == [
            "411001",
            "411002",
            "Koregaon Park",
        ]
        assert seller["store_details"]["store_contact_number"] == "9876543210"

    def test_unverified_seller_cannot_submit_steps(
        self, client, make_seller, auth_headers, business_info_payload
    ):
        """Test onboarding requires a verified email."""
        make_seller(status="pending-email-verification", verified=False)

        response = client.put(
            "/api/auth/business-info", json=business_info_payload, headers=auth_headers()
        )

        assert response.status_code == 403
        assert response.get_json()["requiresVerification"] is True

    def test_skipping_ahead_is_a_conflict(self, client, make_seller, auth_headers, bank_form):
        """Test a later step cannot be submitted before the current one."""
        make_seller(status="pending-business-info")

        response = client.put(
            "/api/auth/bank-details",
            data=bank_form(),
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        assert response.status_code == 409
        body = response.get_json()
        assert "business information" in body["message"]
        assert body["onboardingStep"] == 2

    def test_resubmitting_earlier_step_keeps_status(
        self, client, make_seller, auth_headers, business_info_payload, mongo_db
    ):
        """Test editing a finished step does not move the seller backwards."""
        make_seller(status="pending-documents")
        business_info_payload["businessName"] = "Fresh Basket Foods Wholesale"

        response = client.put(
            "/api/auth/business-info", json=business_info_payload, headers=auth_headers()
        )

        assert response.status_code == 200
        seller = mongo_db.sellers.find_one({"email": "seller@example.com"})
        assert seller["status"] == "pending-documents"
        assert seller["business_info"]["business_name"] == "Fresh Basket Foods Wholesale"


class TestBusinessInfoValidation:
    @pytest.fixture(autouse=True)
    def seller(self, make_seller):
        return make_seller(status="pending-business-info")

    @pytest.mark.parametrize(
        "field, value",
        [
            ("panNumber", "ABCD1234F"),
            ("gstNumber", "27ABCDE1234F1Y5"),
            ("businessType", "Trust"),
            ("businessName", ""),
            ("businessEmail", "accounts-at-freshbasket"),
        ],
    )
    def test_invalid_business_fields(
        self, client, auth_headers, business_info_payload, field, value
    ):
        """Test each business info rule rejects bad input."""
        business_info_payload[field] = value

        response = client.put(
            "/api/auth/business-info", json=business_info_payload, headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_gst_must_match_pan(self, client, auth_headers, business_info_payload):
        """Test the PAN embedded in the GST number must match."""
        business_info_payload["gstNumber"] = "27ZZZZZ9999Z1Z5"

        response = client.put(
            "/api/auth/business-info", json=business_info_payload, headers=auth_headers()
        )

        assert response.status_code == 400
        assert "does not match" in response.get_json()["message"]

    def test_incomplete_address(self, client, auth_headers, business_info_payload):
        """Test addresses need every required part."""
        del business_info_payload["businessAddress"]["city"]

        response = client.put(
            "/api/auth/business-info", json=business_info_payload, headers=auth_headers()
        )

        assert response.status_code == 400

    def test_lowercase_pan_is_normalized(
        self, client, auth_headers, business_info_payload, mongo_db
    ):
        """Test PAN and GST numbers are upper-cased before validation."""
        business_info_payload["panNumber"] = "abcde1234f"
        business_info_payload["gstNumber"] = "27abcde1234f1z5"
        business_info_payload["businessType"] = "private ltd"

        response = client.put(
            "/api/auth/business-info", json=business_info_payload, headers=auth_headers()
        )

        assert response.status_code == 200
        business_info = mongo_db.sellers.find_one({})["business_info"]
        assert business_info["pan_number"] == "ABCDE1234F"
        assert business_info["business_type"] == "Private Ltd"


class TestBankDetailsStep:
    @pytest.fixture(autouse=True)
    def seller(self, make_seller):
        return make_seller(status="pending-bank-details")

    def test_cheque_is_required(self, client, auth_headers, bank_form):
        """Test the first bank submission needs a cancelled cheque."""
        response = client.put(
            "/api/auth/bank-details",
            data=bank_form(with_cheque=False),
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        assert response.status_code == 400
        assert "cancelled cheque" in response.get_json()["message"]

    def test_invalid_ifsc(self, client, auth_headers, bank_form):
        """Test IFSC codes are validated."""
        response = client.put(
            "/api/auth/bank-details",
            data=bank_form(ifscCode="HDFC1234567"),
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        assert response.status_code == 400

    def test_short_account_number(self, client, auth_headers, bank_form):
        """Test account numbers need at least nine digits."""
        response = client.put(
            "/api/auth/bank-details",
            data=bank_form(accountNumber="12345"),
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        assert response.status_code == 400

    def test_cheque_extension_is_checked(self, client, auth_headers, bank_form):
        """Test executable uploads are refused."""
        form = bank_form(with_cheque=False)
        form["cancelledCheque"] = (io.BytesIO(b"MZ"), "cheque.exe")

        response = client.put(
            "/api/auth/bank-details",
            data=form,
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        assert response.status_code == 400
        assert "Unsupported" in response.get_json()["message"]

    def test_cheque_is_stored_and_served(self, client, auth_headers, bank_form, upload_folder):
        """Test the stored cheque is reachable through the uploads route."""
        response = client.put(
            "/api/auth/bank-details",
            data=bank_form(),
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        cheque_url = response.get_json()["seller"]["bankDetails"]["cancelledChequeUrl"]
        filename = cheque_url.rsplit("/", 1)[-1]
        assert filename.endswith(".pdf")
        assert filename != "cheque.pdf"
        assert os.path.exists(upload_folder / filename)

        served = client.get(f"/uploads/{filename}")
        assert served.status_code == 200
        assert served.data == b"%PDF-1.4 cheque"


class TestDocumentsStep:
    @pytest.fixture(autouse=True)
    def seller(self, make_seller):
        return make_seller(status="pending-documents")

    def test_documents_step_needs_a_file(self, client, auth_headers):
        """Test submitting no documents is rejected."""
        response = client.put(
            "/api/auth/documents",
            data={},
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        assert response.status_code == 400

    def test_reupload_replaces_document_type(self, client, auth_headers, mongo_db, upload_folder):
        """Test uploading the same document type twice keeps only the latest."""
        headers = auth_headers()
        client.put(
            "/api/auth/documents",
            data={"panCard": (io.BytesIO(b"first"), "pan.png")},
            headers=headers,
            content_type="multipart/form-data",
        )
        first_filename = mongo_db.sellers.find_one({})["documents"][0]["filename"]

        response = client.put(
            "/api/auth/documents",
            data={"panCard": (io.BytesIO(b"second"), "pan.jpg")},
            headers=headers,
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        documents = mongo_db.sellers.find_one({})["documents"]
        assert len(documents) == 1
        assert documents[0]["filename"].endswith(".jpg")
        assert not os.path.exists(upload_folder / first_filename)


class TestStoreDetailsStep:
    @pytest.fixture(autouse=True)
    def seller(self, make_seller):
        return make_seller(status="pending-store-details")

    def test_closing_time_must_follow_opening(
        self, client, auth_headers, store_details_payload
    ):
        """Test store timings are ordered."""
        store_details_payload["storeTimings"] = {"open": "21:00", "close": "09:00"}

        response = client.put(
            "/api/auth/store-details", json=store_details_payload, headers=auth_headers()
        )

        assert response.status_code == 400

    def test_unknown_store_type(self, client, auth_headers, store_details_payload):
        """Test store types come from the fixed list."""
        store_details_payload["storeType"] = "Kiosk"

        response = client.put(
            "/api/auth/store-details", json=store_details_payload, headers=auth_headers()
        )

        assert response.status_code == 400

    def test_multipart_store_details_with_photos(
        self, client, auth_headers, store_details_payload, mongo_db
    ):
        """Test nested fields sent as JSON strings alongside photo uploads."""
        form = {
            "storeName": store_details_payload["storeName"],
            "storeAddress": (
                '{"addressLine1": "4 Camp Street", "city": "Pune", '
                '"state": "Maharashtra", "pincode": "411002"}'
            ),
            "storeType": "Retail",
            "storeTimings": '{"open": "09:30", "close": "20:00"}',
            "storeContactNumber": "9876543210",
            "coveredDeliveryAreas": '["411001", "411002"]',
            "storePhotos": [
                (io.BytesIO(b"front"), "front.jpg"),
                (io.BytesIO(b"inside"), "inside.webp"),
            ],
        }

        response = client.put(
            "/api/auth/store-details",
            data=form,
            headers=auth_headers(),
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        store_details = mongo_db.sellers.find_one({})["store_details"]
        assert store_details["store_type"] == "Retail"
        assert len(store_details["store_photos"]) == 2
        assert response.get_json()["seller"]["storeDetails"]["storePhotos"][0].startswith(
            "http://localhost/uploads/"
        )
