from unittest import mock

import pytest

from libtabinplugins.common import Status
from tabinplugins import check_ram


@pytest.mark.parametrize('percent, expected, line', [
    (96.25, Status.CRITICAL, 'CRITICAL [check-ram]: 96.2% > 95%'),
    (90, Status.WARNING, 'WARNING [check-ram]: 90.0% > 85%'),
    (12.5, Status.OK, 'OK [check-ram]: 12.5% < 85%'),
])
def test_compare_status(capsys, percent, expected, line):
    assert check_ram.compare_status(95, 85, percent) is expected
    assert capsys.readouterr().out == line + '\n'


def test_main_with_hogs(capsys):
    memory = mock.Mock(total=4096, available=1024)
    hogs = [(42, 2048, 'postgres'), (7, 1024, 'cron')]
    with mock.patch('psutil.virtual_memory', return_value=memory), \
            mock.patch.object(check_ram, 'ram_hogs', return_value=hogs):
        with pytest.raises(SystemExit) as excinfo:
            check_ram.main(['--warn', '70', '--show-hogs', '2'])

    assert excinfo.value.code == 1
    assert capsys.readouterr().out.splitlines() == [
        'WARNING [check-ram]: 75.0% > 70.0%',
        'INFO [check-ram]: top 2 ram hogs:',
        '[    42] 50.0%   2.0K: postgres',
        '[     7] 25.0%   1.0K: cron',
    ]
