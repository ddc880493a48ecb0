"""Tests for contact-field encryption and lookup keys."""

from cryptography.fernet import Fernet

from leadengine.services.crypto import ContactCipher, contact_key


class TestContactKey:
    def test_normalizes_case_and_whitespace(self):
        assert contact_key(" Ravi@Example.com ") == contact_key("ravi@example.com")

    def test_empty_values(self):
        assert contact_key(None) is None
        assert contact_key("   ") is None

    def test_is_hex_digest(self):
        assert len(contact_key("9876543210")) == 64


class TestContactCipher:
    def setup_method(self):
        self.cipher = ContactCipher(enabled=True, key=Fernet.generate_key().decode())

    def test_round_trips_contact_block(self):
        contact = {"first_name": "Ravi", "email": "ravi@example.com", "phone": "9876543210", "alternate_phone": None}
        stored = self.cipher.encrypt_contact(contact)
        assert stored["first_name"] == "Ravi"
        assert stored["email"].startswith("enc:")
        assert stored["alternate_phone"] is None
        assert self.cipher.decrypt_contact(stored) == contact

    def test_does_not_double_encrypt(self):
        once = self.cipher.encrypt_value("ravi@example.com")
        assert self.cipher.encrypt_value(once) == once

    def test_plaintext_reads_back_unchanged(self):
        assert self.cipher.decrypt_value("legacy@example.com") == "legacy@example.com"

    def test_disabled_cipher_stores_plaintext(self):
        cipher = ContactCipher(enabled=False, key="short-passphrase")
        assert cipher.encrypt_value("ravi@example.com") == "ravi@example.com"

    def test_wrong_key_yields_none(self):
        stored = self.cipher.encrypt_value("ravi@example.com")
        other = ContactCipher(enabled=True, key="another-passphrase")
        assert other.decrypt_value(stored) is None
