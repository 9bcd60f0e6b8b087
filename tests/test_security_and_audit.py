from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from dairy_portal.auth import Principal, Role, can_clear_balances
from dairy_portal.models import Principal as PrincipalModel
from dairy_portal.models import PrincipalRole
from dairy_portal.security.headers import security_headers_for
from dairy_portal.security.passwords import hash_password, verify_and_upgrade_password
from dairy_portal.security.sessions import (
    create_web_session,
    is_auth_exempt,
    load_principal_from_token,
    purge_expired_sessions,
    revoke_web_session,
)
from dairy_portal.services.audit_service import list_customer_audit, log_audit
from tests.db_support import add_customer, make_session


class PrincipalTests(unittest.TestCase):
    def test_only_active_admins_clear_balances(self) -> None:
        self.assertTrue(can_clear_balances(Principal(id=1, username='admin', role=Role.ADMIN, active=True)))
        self.assertFalse(can_clear_balances(Principal(id=2, username='old', role=Role.ADMIN, active=False)))
        self.assertFalse(can_clear_balances(Principal(id=3, username='op', role=Role.OPERATOR, active=True)))


class PasswordTests(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password('adminpass')
        self.assertEqual(verify_and_upgrade_password('adminpass', hashed), (True, None))
        self.assertFalse(verify_and_upgrade_password('wrongpass', hashed)[0])

    def test_short_passwords_and_missing_hashes(self) -> None:
        with self.assertRaises(ValueError):
            hash_password('short')
        self.assertEqual(verify_and_upgrade_password('anything', None), (False, None))


class HeaderTests(unittest.TestCase):
    def test_portal_pages_are_not_cached(self) -> None:
        self.assertEqual(security_headers_for('/payments/pending')['Cache-Control'], 'no-store')
        self.assertNotIn('Cache-Control', security_headers_for('/bills/files/Asha_March_2025.pdf'))

    def test_shared_bill_files_skip_login(self) -> None:
        self.assertTrue(is_auth_exempt('/bills/files/Asha_March_2025.pdf'))
        self.assertTrue(is_auth_exempt('/login'))
        self.assertFalse(is_auth_exempt('/bills/3/pdf'))


class WebSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.user = PrincipalModel(username='operator', password_hash='x', role=PrincipalRole.OPERATOR, active=True)
        self.db.add(self.user)
        self.db.flush()

    def tearDown(self) -> None:
        self.db.close()

    def test_token_round_trip_and_revoke(self) -> None:
        token = create_web_session(self.db, self.user.id, ip='127.0.0.1', user_agent='test')

        principal = load_principal_from_token(self.db, token)
        self.assertEqual(principal.username, 'operator')
        self.assertEqual(principal.role, Role.OPERATOR)
        self.assertFalse(principal.is_admin)

        revoke_web_session(self.db, token)
        self.assertIsNone(load_principal_from_token(self.db, token))
        self.assertIsNone(load_principal_from_token(self.db, 'unknown'))
        self.assertIsNone(load_principal_from_token(self.db, None))

    def test_purge_removes_revoked_and_expired_sessions(self) -> None:
        live = create_web_session(self.db, self.user.id, ip=None, user_agent=None)
        revoked = create_web_session(self.db, self.user.id, ip=None, user_agent=None)
        revoke_web_session(self.db, revoked)
        self.db.flush()

        self.assertEqual(purge_expired_sessions(self.db), 1)
        self.assertIsNotNone(load_principal_from_token(self.db, live))
        self.assertEqual(purge_expired_sessions(self.db, now=datetime.now(tz=timezone.utc) + timedelta(days=1)), 1)


class AuditTests(unittest.TestCase):
    def test_metadata_is_stored_as_plain_json(self) -> None:
        db = make_session()
        asha = add_customer(db, 'Asha')

        with self.assertLogs('dairy_portal.services.audit_service', level='INFO'):
            log_audit(
                db,
                actor_principal_id=None,
                action='PAYMENT_RECORDED',
                ip='127.0.0.1',
                customer_id=asha.id,
                metadata={'amount': Decimal('150.00'), 'payment_date': date(2025, 3, 20)},
            )
        db.flush()

        rows = list_customer_audit(db, customer_id=asha.id)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].meta, {'amount': '150.00', 'payment_date': '2025-03-20'})
        db.close()


if __name__ == '__main__':
    unittest.main()
