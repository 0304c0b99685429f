import pytest

from database.models import User
from synthesis.errors import InsufficientCreditsError, LedgerError
from synthesis.ledger import CreditLedger


def _credits(db, user_id):
    db.expire_all()
    return db.query(User).filter(User.id == user_id).one().credits


def test_balance(db, user):
    ledger = CreditLedger(db)
    assert ledger.balance(user.id) == 5
    assert ledger.balance("usr_nobody") is None
    assert ledger.can_afford(user.id)
    assert not ledger.can_afford("usr_nobody")


def test_debit_decrements_by_one(db, user):
    CreditLedger(db).debit(user.id)
    db.commit()
    assert _credits(db, user.id) == 4


def test_debit_never_goes_negative(db, broke_user):
    ledger = CreditLedger(db)
    assert not ledger.can_afford(broke_user.id)
    with pytest.raises(InsufficientCreditsError):
        ledger.debit(broke_user.id)
    db.commit()
    assert _credits(db, broke_user.id) == 0


def test_last_credit_can_be_spent_once(db):
    db.add(User(id="usr_last", credits=1))
    db.commit()
    ledger = CreditLedger(db)
    ledger.debit("usr_last")
    with pytest.raises(InsufficientCreditsError):
        ledger.debit("usr_last")
    db.commit()
    assert _credits(db, "usr_last") == 0


def test_debit_unknown_user(db):
    with pytest.raises(InsufficientCreditsError):
        CreditLedger(db).debit("usr_nobody")


def test_debit_is_rolled_back_with_the_transaction(db, user):
    CreditLedger(db).debit(user.id)
    db.rollback()
    assert _credits(db, user.id) == 5


def test_credit_top_up(db, broke_user):
    ledger = CreditLedger(db)
    ledger.credit(broke_user.id, 10)
    db.commit()
    assert _credits(db, broke_user.id) == 10
    with pytest.raises(LedgerError):
        ledger.credit("usr_nobody", 1)


@pytest.mark.parametrize("amount", [0, -1])
def test_non_positive_amounts_rejected(db, user, amount):
    ledger = CreditLedger(db)
    with pytest.raises(LedgerError):
        ledger.debit(user.id, amount)
    with pytest.raises(LedgerError):
        ledger.credit(user.id, amount)
