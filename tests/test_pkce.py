import base64
import hashlib

from tiktok_auth.pkce import CODE_CHALLENGE_METHOD, compute_code_challenge, generate_pkce_pair


def test_challenge_is_hex_sha256_of_verifier():
    for _ in range(20):
        pair = generate_pkce_pair()
        assert pair.challenge == hashlib.sha256(pair.verifier.encode()).hexdigest()
        assert pair.challenge == compute_code_challenge(pair.verifier)
        assert pair.method == CODE_CHALLENGE_METHOD == "S256"


def test_verifier_is_unpadded_base64url_of_64_bytes():
    pair = generate_pkce_pair()
    assert "=" not in pair.verifier
    raw = base64.urlsafe_b64decode(pair.verifier + "=" * (-len(pair.verifier) % 4))
    assert len(raw) == 64


def test_pairs_are_unique():
    assert len({generate_pkce_pair().verifier for _ in range(50)}) == 50


def test_verifier_not_in_repr():
    pair = generate_pkce_pair()
    assert pair.verifier not in repr(pair)
