from listing_sweep.core.session import Session


def test_mark_bad_degrades_until_unusable():
    session = Session(max_error_score=2)
    assert session.is_usable()

    session.mark_bad()
    assert session.is_usable()

    session.mark_bad()
    assert not session.is_usable()


def test_retire_is_final():
    session = Session()
    session.retire()
    session.mark_good()
    assert not session.is_usable()
