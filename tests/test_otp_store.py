import pytest

from auth_utils import OTPError, OTPStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return OTPStore(ttl_seconds=600, max_attempts=3, clock=clock)


def test_issue_stores_six_digit_code(store, clock):
    otp = store.issue('a@example.com')
    assert len(otp) == 6 and otp.isdigit()
    assert store.get('a@example.com') == {'otp': otp, 'timestamp': clock.now, 'attempts': 0}


def test_verify_exact_code_within_window(store, clock):
    otp = store.issue('a@example.com')
    clock.now += 599
    assert store.verify('a@example.com', otp) is True
    # verification does not consume the code; callers discard it
    assert 'a@example.com' in store


def test_verify_without_code(store):
    with pytest.raises(OTPError, match='expired or not requested'):
        store.verify('nobody@example.com', '123456')


def test_expired_code_is_purged(store, clock):
    otp = store.issue('a@example.com')
    clock.now += 601
    with pytest.raises(OTPError, match='Verification code expired'):
        store.verify('a@example.com', otp)
    assert 'a@example.com' not in store


def test_three_wrong_attempts_purge_the_code(store):
    otp = store.issue('a@example.com')
    wrong = '000000' if otp != '000000' else '111111'

    for attempt in (1, 2):
        with pytest.raises(OTPError, match='Invalid verification code'):
            store.verify('a@example.com', wrong)
        assert store.get('a@example.com')['attempts'] == attempt

    with pytest.raises(OTPError, match='Too many failed attempts'):
        store.verify('a@example.com', wrong)
    assert 'a@example.com' not in store

    with pytest.raises(OTPError):
        store.verify('a@example.com', otp)


def test_reissue_resets_attempts(store):
    store.issue('a@example.com')
    with pytest.raises(OTPError):
        store.verify('a@example.com', 'nope')
    otp = store.issue('a@example.com')
    assert store.get('a@example.com')['attempts'] == 0
    assert store.verify('a@example.com', otp)


def test_stale_entries_are_not_swept(store, clock):
    store.issue('a@example.com')
    store.issue('b@example.com')
    clock.now += 10_000
    assert len(store) == 2


def test_otp_error_is_a_400(store):
    with pytest.raises(OTPError) as excinfo:
        store.verify('a@example.com', '1')
    assert excinfo.value.status_code == 400
    assert excinfo.value.to_dict() == {'error': 'Verification code expired or not requested'}
