from availability_engine.print_slots import main


def test_prints_default_weekday_slots(capsys) -> None:
    # 2030-01-07 is a Monday; providers without saved hours work 09:00-17:00.
    exit_code = main(['--provider-id', 'cli-provider', '--start-date', '2030-01-07'])

    output = capsys.readouterr().out.splitlines()
    assert exit_code == 0
    assert output[0] == '2030-01-07 09:00 - 09:30'
    assert output[-1] == 'Summary: 16 open slots for cli-provider.'


def test_rejects_malformed_start_date(capsys) -> None:
    exit_code = main(['--provider-id', 'cli-provider', '--start-date', '07/01/2030'])

    assert exit_code == 1
    assert 'YYYY-MM-DD' in capsys.readouterr().err
