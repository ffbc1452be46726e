import threading

import pytest

from qrcoded.errors import AlreadyActivatedError, NotFoundError, ValidationError
from qrcoded.models.qr_code import QRCode
from qrcoded.services.activation_service import activate_qr_code

IDENTITY = dict(first_name="Ada", last_name="Lovelace", account_number="0042")


def test_activate_sets_identity_and_flag(db, make_qr_code):
    make_qr_code("abc")

    qr_code = activate_qr_code(db, code_id="abc", **IDENTITY)

    assert qr_code.is_activated is True
    assert qr_code.first_name == "Ada"
    assert qr_code.last_name == "Lovelace"
    assert qr_code.account_number == "0042"
    assert qr_code.activated_at is not None


def test_activate_strips_whitespace(db, make_qr_code):
    make_qr_code("abc")

    qr_code = activate_qr_code(
        db, code_id=" abc ", first_name=" Ada ", last_name="Lovelace", account_number="0042 "
    )

    assert qr_code.first_name == "Ada"
    assert qr_code.account_number == "0042"


def test_second_activation_is_rejected_and_keeps_first_identity(db, make_qr_code):
    make_qr_code("abc")
    activate_qr_code(db, code_id="abc", **IDENTITY)

    with pytest.raises(AlreadyActivatedError):
        activate_qr_code(
            db, code_id="abc", first_name="Eve", last_name="Mallory", account_number="666"
        )
    # Repeating the exact same request is rejected too.
    with pytest.raises(AlreadyActivatedError):
        activate_qr_code(db, code_id="abc", **IDENTITY)

    db.expire_all()
    qr_code = db.get(QRCode, "abc")
    assert (qr_code.first_name, qr_code.last_name, qr_code.account_number) == (
        "Ada",
        "Lovelace",
        "0042",
    )


@pytest.mark.parametrize("missing", ["code_id", "first_name", "last_name", "account_number"])
@pytest.mark.parametrize("value", [None, "", "   "])
def test_missing_field_is_a_validation_error(db, make_qr_code, missing, value):
    make_qr_code("abc")
    kwargs = dict(code_id="abc", **IDENTITY)
    kwargs[missing] = value

    with pytest.raises(ValidationError):
        activate_qr_code(db, **kwargs)

    db.expire_all()
    qr_code = db.get(QRCode, "abc")
    assert qr_code.is_activated is False
    assert qr_code.first_name == ""


def test_unknown_id_is_not_found_and_creates_nothing(db):
    with pytest.raises(NotFoundError):
        activate_qr_code(db, code_id="missing", **IDENTITY)

    assert db.query(QRCode).count() == 0


def test_concurrent_activations_only_one_wins(file_session_factory):
    setup = file_session_factory()
    setup.add(QRCode(id="abc", image_url="https://cdn/abc.png"))
    setup.commit()
    setup.close()

    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def attempt(n):
        session = file_session_factory()
        try:
            barrier.wait()
            activate_qr_code(
                session,
                code_id="abc",
                first_name=f"first-{n}",
                last_name=f"last-{n}",
                account_number=str(n),
            )
            outcome = ("ok", n)
        except AlreadyActivatedError:
            outcome = ("rejected", n)
        finally:
            session.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    winners = [n for status, n in results if status == "ok"]
    assert len(results) == 8
    assert len(winners) == 1

    check = file_session_factory()
    try:
        qr_code = check.get(QRCode, "abc")
        assert qr_code.account_number == str(winners[0])
        assert qr_code.first_name == f"first-{winners[0]}"
    finally:
        check.close()
