"""Real BFV ciphertexts through the development chain. Skipped without TenSEAL."""
from __future__ import annotations

import pytest

ts = pytest.importorskip("tenseal")

from moodledger.demo import run_demo  # noqa: E402
from moodledger.fhe_core import tenseal_context  # noqa: E402
from moodledger.fhe_core.mock_backend import MockBackend  # noqa: E402
from moodledger.repositories.mock_ledger import EMOJIS, MockChain  # noqa: E402
from moodledger.schemas.mood import ViewSource  # noqa: E402
from moodledger.services.input_encryptor import fingerprint_message  # noqa: E402


@pytest.fixture(scope="module")
def keyset():
    return tenseal_context.BfvKeyset()


@pytest.mark.parametrize("bits,count", [(8, 1), (32, 2), (256, 16)])
def test_limb_layout(bits, count):
    assert tenseal_context.limb_count(bits) == count
    value = 2**bits - 1
    limbs = tenseal_context.to_limbs(value, bits)
    assert len(limbs) == count
    assert tenseal_context.from_limbs(limbs, bits) == value


def test_to_limbs_rejects_overflow():
    with pytest.raises(ValueError):
        tenseal_context.to_limbs(256, 8)


def test_public_params_encrypt_and_secret_side_decrypts(keyset):
    public = tenseal_context.load_context(keyset.public_params())
    assert public.is_public()

    message = fingerprint_message("hi")
    payload = tenseal_context.encrypt_uint(public, message, 256)

    assert keyset.decrypt_uint(payload, 256) == message


@pytest.mark.asyncio
async def test_mock_backend_registers_decryptable_inputs(keyset):
    chain = MockChain(keyset=keyset)
    ledger = chain.deploy_mood_ledger()
    backend = MockBackend(chain)
    await backend.load_public_params()

    encrypted = await backend.encrypt_inputs(ledger.address, "0xa1", [(8, 7), (256, 12345)])

    assert len(encrypted.handles) == 2
    assert chain.coprocessor.verify_input_proof(encrypted.handles, encrypted.input_proof, ledger.address, "0xa1")


@pytest.mark.asyncio
async def test_demo_walkthrough(tmp_path):
    result = await run_demo(tmp_path / "storage.json")

    assert result["recorded_before"] is False
    assert result["recorded_after"] is True
    assert result["duplicate_rejected"] is True
    assert list(result["records"]) == [result["day_index"]]
    assert result["decrypted"].clear_emoji == EMOJIS[1]
    assert result["decrypted"].clear_message_fingerprint == fingerprint_message("feeling good")
    assert result["history"][result["day_index"]].source is ViewSource.LOCAL
    assert result["signature_prompts"] == 1
