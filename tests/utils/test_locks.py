import threading
import time

import pytest

from geoaura.utils.locks import KeyedFifoLock


def test_hold():
    locks = KeyedFifoLock()
    with locks.hold('a'):
        assert 'a' in locks
        assert 'b' not in locks

    # Idle keys are forgotten
    assert 'a' not in locks


def test_release_unheld():
    locks = KeyedFifoLock()
    with pytest.raises(RuntimeError):
        locks.release('a')

    locks.acquire('a')
    locks.release('a')
    with pytest.raises(RuntimeError):
        locks.release('a')


def test_release_on_error():
    locks = KeyedFifoLock()
    with pytest.raises(ValueError):
        with locks.hold('a'):
            raise ValueError('boom')

    assert 'a' not in locks


def test_mutual_exclusion():
    locks = KeyedFifoLock()
    counter = {'value': 0}

    def work():
        for _ in range(200):
            with locks.hold('shared'):
                value = counter['value']
                time.sleep(0)
                counter['value'] = value + 1

    threads = [threading.Thread(target=work) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter['value'] == 1600


def test_fifo_order():
    locks = KeyedFifoLock()
    order = []
    locks.acquire('a')

    def waiter(name):
        with locks.hold('a'):
            order.append(name)

    threads = []
    for name in ('first', 'second', 'third'):
        thread = threading.Thread(target=waiter, args=(name,))
        thread.start()
        threads.append(thread)
        # Let each waiter take its ticket before the next arrives
        time.sleep(0.05)

    locks.release('a')
    for thread in threads:
        thread.join()

    assert order == ['first', 'second', 'third']


def test_independent_keys():
    locks = KeyedFifoLock()
    locks.acquire('a')
    acquired = threading.Event()

    def other():
        with locks.hold('b'):
            acquired.set()

    thread = threading.Thread(target=other)
    thread.start()
    assert acquired.wait(5)
    thread.join()
    locks.release('a')
