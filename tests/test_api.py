import json
import os
import unittest
from datetime import date, timedelta
from unittest import mock

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from petpulse import config, models
from petpulse.main import app

from .helpers import DatabaseTestCase, auth_headers

DATE = "2025-03-01"

VET_BODY = {
    "ownerName": "Nimal Perera",
    "ownerPhone": "0771234567",
    "ownerEmail": "nimal@petmail.lk",
    "petType": "Dog",
    "petSize": "medium",
    "reason": "Vaccination booster",
    "dateISO": DATE,
    "timeSlotMinutes": 600,
}


class ApiTestCase(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.client = TestClient(app)
        self.user = auth_headers()
        self.doctor = auth_headers("doctor-1", "doctor", "Dr. Silva", "silva@petpulse.lk")
        self.caretaker = auth_headers("caretaker-1", "caretaker", "Ruwan", "ruwan@petpulse.lk")
        self.admin = auth_headers("admin-1", "admin", "Admin", "admin@petpulse.lk")

        patcher = mock.patch("petpulse.routers.appointments.telegram_notifier")
        self.telegram = patcher.start()
        self.telegram.send_new_booking_notification = mock.AsyncMock(return_value=True)
        self.telegram.send_booking_cancelled_notification = mock.AsyncMock(return_value=True)
        self.addCleanup(patcher.stop)

    def book_vet(self, **overrides):
        return self.client.post("/api/vet/appointments", json=dict(VET_BODY, **overrides), headers=self.user)


class VetBookingFlowTestCase(ApiTestCase):
    def test_book_accept_reject_rebook(self):
        response = self.book_vet()
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["ok"])
        first_id = body["id"]
        self.telegram.send_new_booking_notification.assert_awaited_once()

        duplicate = self.book_vet()
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["detail"], "This time slot is already booked. Please choose another.")

        calendar = self.client.get("/api/vet/appointments", params={"date": DATE}).json()
        self.assertEqual(len(calendar), 1)
        self.assertEqual(calendar[0]["start"], "10:00 AM")
        self.assertEqual(calendar[0]["startMinutes"], 600)

        with mock.patch("petpulse.routers.appointments.notify_status_change", new=mock.AsyncMock()) as notify:
            accepted = self.client.patch(
                f"/api/vet/{first_id}/status",
                json={"status": "accepted", "actorName": "Dr. Silva"},
                headers=self.doctor,
            )
            self.assertEqual(accepted.status_code, 200)
            self.assertEqual(accepted.json()["item"]["status"], "accepted")
            notify.assert_called_once()
            service, booking, status, actor = notify.call_args.args
            self.assertEqual((service, status, actor), ("vet", "accepted", "Dr. Silva"))
            self.assertEqual(booking["id"], first_id)

            rejected = self.client.patch(
                f"/api/vet/{first_id}/status",
                json={"status": "rejected", "rejectionReason": "fully booked"},
                headers=self.doctor,
            )
            self.assertEqual(rejected.status_code, 200)
            self.assertEqual(rejected.json()["item"]["rejectionReason"], "fully booked")
            self.assertEqual(notify.call_count, 2)
            self.assertEqual(notify.call_args.args[1]["rejection_reason"], "fully booked")

            reopen = self.client.patch(
                f"/api/vet/{first_id}/status", json={"status": "accepted"}, headers=self.doctor
            )
            self.assertEqual(reopen.status_code, 400)
            self.assertEqual(notify.call_count, 2)

        rebooked = self.book_vet()
        self.assertEqual(rebooked.status_code, 201)
        self.assertNotEqual(rebooked.json()["id"], first_id)

    def test_status_change_needs_the_right_staff(self):
        appointment_id = self.book_vet().json()["id"]

        for headers in (self.user, self.caretaker):
            response = self.client.patch(
                f"/api/vet/{appointment_id}/status", json={"status": "accepted"}, headers=headers
            )
            self.assertEqual(response.status_code, 403)

    def test_unknown_status_is_rejected(self):
        appointment_id = self.book_vet().json()["id"]

        response = self.client.patch(
            f"/api/vet/{appointment_id}/status", json={"status": "done"}, headers=self.admin
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Invalid status")

    def test_requires_authentication(self):
        response = self.client.post("/api/vet/appointments", json=VET_BODY)
        self.assertIn(response.status_code, (401, 403))

        bad_token = self.client.post(
            "/api/vet/appointments", json=VET_BODY, headers={"Authorization": "Bearer not-a-jwt"}
        )
        self.assertEqual(bad_token.status_code, 401)

    def test_request_validation_is_400(self):
        response = self.book_vet(timeSlotMinutes=2000)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "timeSlotMinutes")

        missing_reason = dict(VET_BODY)
        missing_reason.pop("reason")
        response = self.client.post("/api/vet/appointments", json=missing_reason, headers=self.user)
        self.assertEqual(response.status_code, 400)

    def test_unknown_service_and_appointment(self):
        response = self.client.post("/api/boarding/appointments", json=VET_BODY, headers=self.user)
        self.assertEqual(response.status_code, 404)

        response = self.client.get("/api/vet/not-a-uuid", headers=self.user)
        self.assertEqual(response.status_code, 404)

    def test_get_update_and_list(self):
        appointment_id = self.book_vet().json()["id"]

        fetched = self.client.get(f"/api/vet/{appointment_id}", headers=self.user).json()
        self.assertEqual(fetched["data"]["dateISO"], DATE)
        self.assertEqual(fetched["data"]["paymentStatus"], "unpaid")

        updated = self.client.put(
            f"/api/vet/{appointment_id}", json={"timeSlotMinutes": 660}, headers=self.user
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["data"]["timeSlotMinutes"], 660)

        locked = self.client.put(
            f"/api/vet/{appointment_id}", json={"reason": "Something else"}, headers=self.user
        )
        self.assertEqual(locked.status_code, 400)

        mine = self.client.get("/api/vet/", headers=self.user).json()
        self.assertEqual([item["id"] for item in mine["data"]], [appointment_id])

        self.assertEqual(self.client.get("/api/vet/all", headers=self.user).status_code, 403)
        everything = self.client.get("/api/vet/all", headers=self.doctor).json()
        self.assertEqual(len(everything["data"]), 1)

    def test_other_owner_cannot_edit(self):
        appointment_id = self.book_vet().json()["id"]
        stranger = auth_headers("user-2", "user", "Someone", "someone@petmail.lk")

        response = self.client.put(f"/api/vet/{appointment_id}", json={"notes": "x"}, headers=stranger)
        self.assertEqual(response.status_code, 403)

    def test_admin_delete_alerts_staff(self):
        appointment_id = self.book_vet().json()["id"]

        self.assertEqual(self.client.delete(f"/api/vet/{appointment_id}", headers=self.doctor).status_code, 403)

        response = self.client.delete(f"/api/vet/{appointment_id}", headers=self.admin)
        self.assertEqual(response.status_code, 200)
        self.telegram.send_booking_cancelled_notification.assert_awaited_once()
        self.assertEqual(self.client.get(f"/api/vet/{appointment_id}", headers=self.user).status_code, 404)

    def test_my_schedule(self):
        self.book_vet()
        grooming = self.client.post(
            "/api/grooming/appointments",
            json={
                "ownerName": "Nimal Perera",
                "ownerPhone": "0771234567",
                "ownerEmail": "nimal@petmail.lk",
                "petType": "Cat",
                "packageId": "nail-trim",
                "dateISO": DATE,
                "timeSlotMinutes": 600,
            },
            headers=self.user,
        )
        self.assertEqual(grooming.status_code, 201)

        items = self.client.get("/api/schedule/mine", params={"email": "nimal@petmail.lk"}, headers=self.user).json()["items"]
        self.assertEqual(sorted(item["service"] for item in items), ["grooming", "vet"])
        self.assertEqual(items[0]["dateISO"], DATE)


class GroomingApiTestCase(ApiTestCase):
    def book(self, slot):
        return self.client.post(
            "/api/grooming/appointments",
            json={
                "ownerName": "Kasun Silva",
                "ownerPhone": "0712345678",
                "ownerEmail": "kasun@petmail.lk",
                "petType": "Cat",
                "packageId": "full-grooming",
                "dateISO": DATE,
                "timeSlotMinutes": slot,
            },
            headers=self.user,
        )

    def test_early_and_last_slot_of_the_day(self):
        self.assertEqual(self.book(420).status_code, 201)
        last = self.book(1380)
        self.assertEqual(last.status_code, 201)

        calendar = self.client.get("/api/grooming/appointments", params={"date": DATE})
        self.assertEqual(calendar.status_code, 200)
        self.assertEqual([entry["end"] for entry in calendar.json()], ["08:00 AM", "12:00 AM"])

        deleted = self.client.delete(f"/api/grooming/{last.json()['id']}", headers=self.admin)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(
            self.telegram.send_booking_cancelled_notification.call_args.kwargs["time_label"],
            "11:00 PM–12:00 AM",
        )


class DaycareApiTestCase(ApiTestCase):
    def book(self, drop_off, pick_up):
        return self.client.post(
            "/api/daycare/appointments",
            json={
                "ownerName": "Dilini Fernando",
                "ownerPhone": "0761112233",
                "ownerEmail": "dilini@petmail.lk",
                "petType": "Dog",
                "petName": "Rex",
                "packageId": "half-day",
                "dateISO": DATE,
                "dropOffMinutes": drop_off,
                "pickUpMinutes": pick_up,
            },
            headers=self.user,
        )

    def test_touching_windows_then_overlap(self):
        self.assertEqual(self.book(480, 720).status_code, 201)
        self.assertEqual(self.book(720, 960).status_code, 201)

        overlap = self.book(700, 800)
        self.assertEqual(overlap.status_code, 409)
        self.assertEqual(overlap.json()["detail"], "Overlaps another booking.")

    def test_inverted_window(self):
        self.assertEqual(self.book(720, 480).status_code, 400)

    def test_caretaker_handles_daycare(self):
        appointment_id = self.book(480, 720).json()["id"]

        with mock.patch("petpulse.routers.appointments.notify_status_change", new=mock.AsyncMock()) as notify:
            response = self.client.patch(
                f"/api/daycare/{appointment_id}/status", json={"status": "accepted"}, headers=self.caretaker
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["item"]["actorName"], "Ruwan")
        notify.assert_called_once()


class InventoryApiTestCase(ApiTestCase):
    def create_product(self, **overrides):
        body = {"name": "Puppy Kibble 2kg", "category": "Food", "price": 100.0, "quantity": 5}
        body.update(overrides)
        return self.client.post("/api/inventory", json=body, headers=self.admin)

    def test_sales_and_manual_discount(self):
        expiring = self.create_product(expiryDate=(date.today() + timedelta(days=3)).isoformat())
        self.assertEqual(expiring.status_code, 201)
        self.create_product(name="Dog Leash", quantity=50)

        sales = self.client.get("/api/sales").json()
        self.assertEqual(len(sales), 1)
        self.assertEqual(sales[0]["discountPrice"], 70.0)

        product_id = expiring.json()["id"]
        response = self.client.patch(f"/api/inventory/{product_id}/discount", json={"discount": 50}, headers=self.admin)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["product"]["discountPrice"], 50.0)

        too_much = self.client.patch(f"/api/inventory/{product_id}/discount", json={"discount": 150}, headers=self.admin)
        self.assertEqual(too_much.status_code, 400)

        dashboard = self.client.get("/api/dashboard", headers=self.admin).json()
        self.assertEqual(dashboard["totalProducts"], 2)
        self.assertEqual(dashboard["lowStock"], 1)
        self.assertEqual(dashboard["discountedProducts"], 1)

    def test_inventory_writes_are_admin_only(self):
        self.assertEqual(
            self.client.post(
                "/api/inventory", json={"name": "x", "category": "y", "price": 1}, headers=self.user
            ).status_code,
            403,
        )
        self.assertEqual(self.client.get("/api/dashboard", headers=self.caretaker).status_code, 403)

        product_id = self.create_product().json()["id"]
        self.assertEqual(
            self.client.patch(f"/api/inventory/{product_id}", json={"price": 1}, headers=self.user).status_code, 403
        )
        self.assertEqual(self.client.delete(f"/api/inventory/{product_id}", headers=self.caretaker).status_code, 403)

    def test_zero_manual_discount_on_create(self):
        response = self.create_product(
            manualDiscountPercent=0, expiryDate=(date.today() + timedelta(days=3)).isoformat()
        )

        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.json()["manualDiscountPercent"])
        self.assertEqual(response.json()["discountPrice"], 70.0)

    def test_edit_stock_and_delete(self):
        product_id = self.create_product(expiryDate=(date.today() + timedelta(days=90)).isoformat()).json()["id"]
        self.assertEqual(self.client.get("/api/sales").json(), [])
        self.assertEqual(self.client.get("/api/inventory/near-expiry").json(), [])

        edited = self.client.patch(
            f"/api/inventory/{product_id}",
            json={"price": 200.0, "expiryDate": (date.today() + timedelta(days=3)).isoformat()},
            headers=self.admin,
        )
        self.assertEqual(edited.status_code, 200)
        self.assertEqual(edited.json()["discountPrice"], 140.0)

        sales = self.client.get("/api/sales").json()
        self.assertEqual([(item["id"], item["discountPrice"]) for item in sales], [(product_id, 140.0)])
        near = self.client.get("/api/inventory/near-expiry").json()
        self.assertEqual([item["id"] for item in near], [product_id])

        self.assertEqual(
            self.client.patch(f"/api/inventory/{product_id}", json={"price": -1}, headers=self.admin).status_code,
            400,
        )

        stock = self.client.patch(
            f"/api/inventory/{product_id}/stock", json={"operation": "add", "quantity": 10}, headers=self.admin
        )
        self.assertEqual(stock.status_code, 200)
        self.assertEqual(stock.json()["quantity"], 15)
        short = self.client.patch(
            f"/api/inventory/{product_id}/stock", json={"operation": "deduct", "quantity": 16}, headers=self.admin
        )
        self.assertEqual(short.status_code, 400)
        self.assertEqual(short.json()["detail"], "Insufficient stock")

        deleted = self.client.delete(f"/api/inventory/{product_id}", headers=self.admin)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(deleted.json()["message"], "Product permanently deleted")
        self.assertEqual(self.client.get("/api/inventory").json(), [])
        self.assertEqual(self.client.delete(f"/api/inventory/{product_id}", headers=self.admin).status_code, 404)


class PaymentApiTestCase(ApiTestCase):
    def upload(self, order, content=b"\x89PNG\r\n\x1a\nslip", content_type="image/png"):
        return self.client.post(
            "/api/payments/upload-slip",
            files={"slip": ("slip.png", content, content_type)},
            data={"order": json.dumps(order)},
            headers=self.user,
        )

    def test_upload_slip_marks_booking_paid(self):
        appointment_id = self.book_vet().json()["id"]
        order = {
            "currency": "LKR",
            "items": [
                {"id": appointment_id, "service": "vet", "basePrice": 2500, "extras": [], "lineTotal": 2500},
                {"id": "garbage", "service": "vet", "basePrice": 0, "extras": [], "lineTotal": 0},
            ],
        }

        response = self.upload(order)

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["message"], "Slip uploaded successfully. Appointments marked as PAID.")
        payment = self.db.get(models.PaymentRecord, body["paymentId"])
        self.assertTrue(os.path.exists(os.path.join(config.UPLOAD_DIR, payment.slip["filename"])))

        fetched = self.client.get(f"/api/vet/{appointment_id}", headers=self.user).json()
        self.assertEqual(fetched["data"]["paymentStatus"], "paid")

        listed = self.client.get("/api/payments", headers=self.user).json()
        self.assertEqual([p["id"] for p in listed], [body["paymentId"]])

        rejected = self.client.patch(f"/api/payments/{body['paymentId']}/reject", headers=self.doctor)
        self.assertEqual(rejected.status_code, 200)
        self.assertEqual(rejected.json()["payment"]["status"], "rejected")
        fetched = self.client.get(f"/api/vet/{appointment_id}", headers=self.user).json()
        self.assertEqual(fetched["data"]["paymentStatus"], "unpaid")

    def test_upload_rejects_bad_input(self):
        self.assertEqual(self.upload({"items": []}).status_code, 400)
        self.assertEqual(self.upload({"items": [{"id": "x"}]}, content_type="text/plain").status_code, 400)

        response = self.client.post(
            "/api/payments/upload-slip",
            files={"slip": ("slip.png", b"png", "image/png")},
            data={"order": "{not json"},
            headers=self.user,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Invalid order JSON")

    def test_failed_upload_leaves_no_slip_behind(self):
        appointment_id = self.book_vet().json()["id"]
        items = [{"id": appointment_id, "service": "vet", "basePrice": 2500, "extras": [], "lineTotal": 2500}]
        stored = set(os.listdir(config.UPLOAD_DIR))

        response = self.upload({"subtotal": "abc", "items": items})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Order subtotal must be a number")
        self.assertEqual(set(os.listdir(config.UPLOAD_DIR)), stored)

        client = TestClient(app, raise_server_exceptions=False)
        with mock.patch("petpulse.payments.record_slip_payment", side_effect=SQLAlchemyError("database is locked")):
            response = client.post(
                "/api/payments/upload-slip",
                files={"slip": ("slip.png", b"\x89PNG\r\n\x1a\nslip", "image/png")},
                data={"order": json.dumps({"items": items})},
                headers=self.user,
            )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(set(os.listdir(config.UPLOAD_DIR)), stored)
        fetched = self.client.get(f"/api/vet/{appointment_id}", headers=self.user).json()
        self.assertEqual(fetched["data"]["paymentStatus"], "unpaid")

    def test_mark_paid(self):
        appointment_id = self.book_vet().json()["id"]

        response = self.client.patch(
            "/api/payments/mark-paid",
            json={"items": [{"referenceId": appointment_id, "service": "vet"}]},
            headers=self.admin,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["updated"], 1)
        self.assertEqual(
            self.client.patch("/api/payments/mark-paid", json={"items": [{}]}, headers=self.user).status_code, 403
        )


class AdoptionApiTestCase(ApiTestCase):
    def test_reserve_and_release_pet(self):
        pet = models.Pet(name="Bella", species="Dog")
        self.db.add(pet)
        self.db.commit()
        pet_id = pet.id

        created = self.client.post("/api/adoption", json={"petId": pet_id, "price": 5000}, headers=self.user)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["paymentStatus"], "unpaid")

        taken = self.client.post("/api/adoption", json={"petId": pet_id}, headers=self.user)
        self.assertEqual(taken.status_code, 409)

        released = self.client.delete(f"/api/adoption/{created.json()['id']}", headers=self.admin)
        self.assertEqual(released.status_code, 200)
        self.db.expire_all()
        self.assertFalse(self.db.get(models.Pet, pet_id).is_adopted)


class HealthTestCase(unittest.TestCase):
    def test_health(self):
        client = TestClient(app)
        self.assertEqual(client.get("/health").json(), {"status": "healthy"})
        self.assertEqual(client.get("/").json()["name"], "PetPulse")


if __name__ == "__main__":
    unittest.main()
