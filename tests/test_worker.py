from farmshop import worker


class BrokenTask:
    name = "send_order_email"

    def delay(self, *args):
        raise ConnectionError("broker unreachable")


def test_dispatch_survives_broker_outage(caplog):
    worker.dispatch(BrokenTask(), "alice@x.com", 1, 500.0)
    assert "Could not queue send_order_email" in caplog.text


def test_order_email_task_runs_eagerly():
    result = worker.send_order_email.delay("alice@x.com", 7, 1300.0)
    assert result.get() is True
