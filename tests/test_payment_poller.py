import threading
from decimal import Decimal

from storefront.domain.errors import ProcessorError
from storefront.domain.schemas import PaymentState, PaymentStatus
from storefront.services.payment_poller import PaymentPoller


class ScriptedGateway:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def poll_status(self, transaction_id):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return PaymentStatus(status=outcome)


def test_stops_on_paid_and_fires_callback_once():
    paid = []
    gateway = ScriptedGateway(PaymentState.PENDING, PaymentState.PENDING, PaymentState.PAID)
    poller = PaymentPoller(gateway, "txn", on_paid=paid.append, interval=0)

    final = poller.run()

    assert final.status == PaymentState.PAID
    assert gateway.calls == 3
    assert len(paid) == 1
    assert poller.cancelled
    #ticks after stopping are no-ops
    assert poller.tick() is None
    assert len(paid) == 1


def test_transient_processor_errors_are_tolerated():
    gateway = ScriptedGateway(ProcessorError("timeout"), PaymentState.PENDING, PaymentState.EXPIRED)
    poller = PaymentPoller(gateway, "txn", interval=0)

    assert poller.run().status == PaymentState.EXPIRED
    assert gateway.calls == 3


def test_cancel_stops_polling_without_callback():
    paid = []
    gateway = ScriptedGateway(PaymentState.PENDING)
    poller = PaymentPoller(gateway, "txn", on_paid=paid.append, interval=0)

    assert poller.tick().status == PaymentState.PENDING
    poller.cancel()

    assert poller.run() is not None
    assert gateway.calls == 1
    assert paid == []


def test_overlapping_tick_is_skipped():
    release = threading.Event()
    entered = threading.Event()

    class SlowGateway:
        calls = 0

        def poll_status(self, transaction_id):
            SlowGateway.calls += 1
            entered.set()
            release.wait(2)
            return PaymentStatus(status=PaymentState.PENDING)

    poller = PaymentPoller(SlowGateway(), "txn", interval=0)
    worker = threading.Thread(target=poller.tick)
    worker.start()
    entered.wait(2)

    assert poller.tick() is None
    release.set()
    worker.join(2)
    assert SlowGateway.calls == 1


def test_max_polls_bounds_the_loop():
    gateway = ScriptedGateway(PaymentState.PENDING)
    poller = PaymentPoller(gateway, "txn", interval=0, max_polls=5)

    assert poller.run().status == PaymentState.PENDING
    assert gateway.calls == 5


def test_polls_real_gateway_in_background(gateway, qr_client):
    qr_client.fail = True
    code = gateway.request_payment("temp_1", Decimal("10"))
    done = threading.Event()

    poller = PaymentPoller(gateway, code.transaction_id, on_paid=lambda s: done.set(), interval=0.01)
    poller.start()

    assert done.wait(5)
    poller.join(5)
    assert poller.last_status.status == PaymentState.PAID
