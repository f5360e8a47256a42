import pytest

from xvfs.layout import KernelPanic
from xvfs.scheduler import LotteryRandom, ProcessTable, ProcState


@pytest.fixture
def table():
    return ProcessTable(nproc=8)


def test_random_from_zero_seed():
    assert LotteryRandom(0).next() == 12345


def test_random_is_deterministic_and_in_range():
    a, b = LotteryRandom(), LotteryRandom()
    seq_a = [a.next() for _ in range(50)]
    seq_b = [b.next() for _ in range(50)]
    assert seq_a == seq_b
    assert all(0 <= v < 2**31 for v in seq_a)


def test_userinit(table):
    p = table.userinit()
    assert p.pid == 1
    assert p.name == "initcode"
    assert p.tickets == 10
    assert p.ticks == 0
    assert p.state is ProcState.RUNNABLE
    assert table.initproc is p


def test_fork_tickets_are_at_least_ten(table):
    init = table.userinit()
    table.settickets(init, 5)
    child = table.fork(init)
    assert child.tickets == 10
    table.settickets(init, 30)
    child2 = table.fork(init)
    assert child2.tickets == 30
    assert child2.pid == child.pid + 1
    assert child.parent is init
    assert child.name == init.name


def test_fork_fails_when_table_full():
    t = ProcessTable(nproc=2)
    init = t.userinit()
    t.fork(init)
    with pytest.raises(OSError):
        t.fork(init)


def test_init_cannot_exit(table):
    init = table.userinit()
    with pytest.raises(KernelPanic):
        table.exit(init)


def test_exit_and_wait_reaps_child(table):
    init = table.userinit()
    child = table.fork(init)
    pid = child.pid
    table.exit(child)
    assert child.state is ProcState.ZOMBIE
    assert table.wait(init) == pid
    assert child.state is ProcState.UNUSED
    with pytest.raises(ChildProcessError):
        table.wait(init)


def test_orphans_go_to_init(table):
    init = table.userinit()
    child = table.fork(init)
    grandchild = table.fork(child)
    table.exit(child)
    assert grandchild.parent is init


def test_kill_wakes_sleeper(table):
    init = table.userinit()
    child = table.fork(init)
    table.fork(child)
    table.wait(child)
    assert child.state is ProcState.SLEEPING
    table.kill(child.pid)
    assert child.killed
    assert child.state is ProcState.RUNNABLE
    with pytest.raises(InterruptedError):
        table.wait(child)


def test_kill_unknown_pid(table):
    table.userinit()
    with pytest.raises(ProcessLookupError):
        table.kill(999)


def test_settickets_without_process(table):
    with pytest.raises(ValueError):
        table.settickets(None, 20)


def test_schedule_with_nothing_runnable(table):
    assert table.schedule() is None


def test_schedule_single_process(table):
    init = table.userinit()
    for _ in range(5):
        assert table.schedule() is init
    assert init.ticks == 5
    assert init.state is ProcState.RUNNABLE


def test_schedule_skips_sleepers(table):
    init = table.userinit()
    child = table.fork(init)
    table.wait(init)
    for _ in range(20):
        assert table.schedule() is child
    assert init.ticks == 0


def test_lottery_favours_more_tickets(table):
    init = table.userinit()
    table.wait(init) if False else None
    low = table.fork(init)
    high = table.fork(init)
    table.settickets(high, 200)
    init.state = ProcState.SLEEPING
    rounds = 1000
    for _ in range(rounds):
        table.schedule()
    assert low.ticks + high.ticks == rounds
    assert high.ticks > low.ticks


def test_same_seed_same_schedule():
    first_table = ProcessTable(nproc=4)
    first_init = first_table.userinit()
    first_child = first_table.fork(first_init)
    first_table.settickets(first_child, 40)
    first = [first_table.schedule().pid for _ in range(30)]

    second_table = ProcessTable(nproc=4)
    second_init = second_table.userinit()
    second_child = second_table.fork(second_init)
    second_table.settickets(second_child, 40)
    second = [second_table.schedule().pid for _ in range(30)]

    assert first == second
    assert set(first) <= {first_init.pid, first_child.pid}
    assert first_init.ticks + first_child.ticks == 30


def test_pstat(table):
    init = table.userinit()
    child = table.fork(init)
    table.exit(child)
    stats = table.pstat()
    assert len(stats) == 8
    assert stats[0].state == "A"
    assert stats[0].pid == init.pid
    assert stats[0].name == "initcode"
    assert stats[1].state == "Z"
    assert stats[2].state is None


def test_procdump(table):
    init = table.userinit()
    child = table.fork(init)
    table.wait(init)
    assert table.procdump() == [
        f"{init.pid} sleep  initcode",
        f"{child.pid} runble initcode",
    ]