import re
from datetime import datetime

from compliance.signatures.services.hashing import (
    HashingService, parse_signing_timestamp, random_token, signing_timestamp, verification_code,
)


def test_content_hash_is_sha256_hex():
    # SHA-256("abc")
    assert HashingService.content_hash(["abc"]) == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_content_hash_joins_parts_with_delimiter():
    assert HashingService.content_hash(["a", "b", "c"]) == HashingService.content_hash(["a-b-c"])


def test_content_hash_is_deterministic():
    parts = ["doc-1", "collab-1", "Mario Rossi", "mario@example.com", "2024-05-01T10:20:30.123Z"]
    assert HashingService.content_hash(parts) == HashingService.content_hash(list(parts))


def test_content_hash_changes_with_any_single_character():
    base = ["doc-1", "collab-1", "Mario Rossi", "mario@example.com", "2024-05-01T10:20:30.123Z"]
    reference = HashingService.content_hash(base)
    differing_bits = []
    for i in range(len(base)):
        changed = list(base)
        changed[i] = changed[i][:-1] + chr(ord(changed[i][-1]) ^ 1)
        digest = HashingService.content_hash(changed)
        assert digest != reference
        differing_bits.append(bin(int(digest, 16) ^ int(reference, 16)).count("1"))
    # roughly half of the 256 bits flip
    average = sum(differing_bits) / len(differing_bits)
    assert 96 < average < 160


def test_signature_hash_uses_field_order():
    args = ("doc-1", "collab-1", "Mario Rossi", "mario@example.com", "2024-05-01T10:20:30.123Z")
    assert HashingService.signature_hash(*args) == HashingService.content_hash(list(args))
    assert HashingService.signature_hash(*args) != HashingService.content_hash(list(reversed(args)))


def test_random_token_is_hex_of_requested_length():
    token = random_token()
    assert re.fullmatch(r"[0-9a-f]{64}", token)
    assert len(random_token(16)) == 32
    assert random_token() != random_token()


def test_verification_codes_unique_within_batch():
    now_ms = 1714558830123
    codes = [verification_code(i, now_ms=now_ms) for i in range(10)]
    assert len(set(codes)) == 10
    for index, code in enumerate(codes):
        assert re.fullmatch(r"VER-[0-9A-Z]+-[0-9A-Z]{5}-\d+", code)
        assert code.endswith(f"-{index}")


def test_signing_timestamp_round_trip():
    moment = datetime(2024, 5, 1, 10, 20, 30, 123000)
    value = signing_timestamp(moment)
    assert value == "2024-05-01T10:20:30.123Z"
    assert parse_signing_timestamp(value) == moment
