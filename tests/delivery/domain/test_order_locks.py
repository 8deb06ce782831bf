import threading

from delivery.locks import OrderLocks


class TestOrderLocks:
    def test_lock_is_reentrant(self):
        locks = OrderLocks()
        with locks.hold("ord-1"):
            with locks.hold("ord-1"):
                assert len(locks) == 1

    def test_released_locks_are_forgotten(self):
        locks = OrderLocks()
        for n in range(50):
            with locks.hold(f"ord-{n}"):
                pass
        assert len(locks) == 0

    def test_lock_released_after_error(self):
        locks = OrderLocks()
        try:
            with locks.hold("ord-1"):
                raise RuntimeError("courier exploded")
        except RuntimeError:
            pass
        assert len(locks) == 0

    def test_same_order_is_serialized(self):
        locks = OrderLocks()
        entered = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with locks.hold("ord-1"):
                entered.set()
                release.wait(timeout=2)
                order.append("first")

        def second():
            entered.wait(timeout=2)
            with locks.hold("ord-1"):
                order.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for t in threads:
            t.start()
        entered.wait(timeout=2)
        release.set()
        for t in threads:
            t.join(timeout=2)

        assert order == ["first", "second"]
        assert len(locks) == 0

    def test_different_orders_do_not_block(self):
        locks = OrderLocks()
        with locks.hold("ord-1"):
            acquired = threading.Event()

            def other():
                with locks.hold("ord-2"):
                    acquired.set()

            t = threading.Thread(target=other)
            t.start()
            assert acquired.wait(timeout=2)
            t.join(timeout=2)
