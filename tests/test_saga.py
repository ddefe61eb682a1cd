import pytest

from utils.saga import CompensationFailure, Saga


class LookupFailed(Exception):
    pass


def failing(exc):
    def action(ctx, *_):
        raise exc
    return action


def test_steps_share_context():
    saga = Saga('signup', {'email': 'a@example.com'})
    saga.step('customer', lambda ctx: f"cus_for_{ctx['email']}")
    saga.step('subscription', lambda ctx: f"sub_for_{ctx['customer']}")

    ctx = saga.run()

    assert ctx['subscription'] == 'sub_for_cus_for_a@example.com'
    assert saga.step_names == ['customer', 'subscription']


def test_failure_compensates_in_reverse_order():
    undone = []
    saga = Saga('signup')
    saga.step('first', lambda ctx: 1, compensation=lambda ctx, result: undone.append(('first', result)))
    saga.step('second', lambda ctx: 2, compensation=lambda ctx, result: undone.append(('second', result)))
    saga.step('third', failing(LookupFailed('nope')))

    with pytest.raises(LookupFailed):
        saga.run()

    assert undone == [('second', 2), ('first', 1)]
    assert saga.compensation_failures == []


def test_compensation_failure_is_recorded_not_raised():
    undone = []
    saga = Saga('signup')
    saga.step('first', lambda ctx: 1, compensation=lambda ctx, result: undone.append('first'))
    saga.step('second', lambda ctx: 2, compensation=failing(RuntimeError('undo failed')))
    saga.step('third', failing(LookupFailed('nope')))

    # The original error wins
    with pytest.raises(LookupFailed):
        saga.run()

    # The remaining compensations still ran
    assert undone == ['first']
    assert len(saga.compensation_failures) == 1
    failure = saga.compensation_failures[0]
    assert isinstance(failure, CompensationFailure)
    assert failure.step_name == 'second'
    assert str(failure.error) == 'undo failed'
    assert "compensation for step 'second' failed" in str(failure)


def test_tolerated_errors_skip_the_step():
    saga = Saga('cleanup')
    saga.step('detach', failing(LookupFailed('gone')), tolerate=(LookupFailed,))
    saga.step('delete', lambda ctx: 'deleted')

    ctx = saga.run()

    assert ctx['detach'] is None
    assert ctx['delete'] == 'deleted'
    assert [name for name, _ in saga.skipped] == ['detach']


def test_untolerated_errors_still_abort():
    ran = []
    saga = Saga('cleanup')
    saga.step('detach', failing(ValueError('bug')), tolerate=(LookupFailed,))
    saga.step('delete', lambda ctx: ran.append('delete'))

    with pytest.raises(ValueError):
        saga.run()

    assert ran == []


def test_duplicate_step_names_are_rejected():
    saga = Saga('dupes').step('a', lambda ctx: None)
    with pytest.raises(ValueError):
        saga.step('a', lambda ctx: None)
