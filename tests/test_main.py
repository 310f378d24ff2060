import os
import warnings

from fixcompletion import Config, compopt, main, shell_candidates, split_command, strict, Token


example = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'example')
rules   = os.path.join(example, 'rules.py')
legacy  = os.path.join(example, 'legacy.py')


def run_main(capsys, *args):
    code = main(['fixcompletion.py'] + list(args))
    out, err = capsys.readouterr()
    return code, out.splitlines(), err


def test_config_reads_the_catalog_from_comments():
    config = Config(rules)
    names  = [name for name, _ in config.catalog.list_rules()]
    assert names[0] == 'DisableSyntax'
    assert 'RemoveUnused' in names
    assert dict(config.catalog.list_rules())['OrganizeImports'] == 'Organizes import statements.'
    assert not config.compat
    assert Config(legacy).compat


def test_split_command_drops_the_command():
    assert split_command('fix --test', 10) == (' --test', 7)
    assert split_command('  fix', 2) == ('', -3)
    assert split_command('', 0) == ('', 0)


def test_shell_candidates_replace_the_current_word():
    completions = strict([Token('RemoveUnused -- ...', 'oveUnused')])
    assert shell_candidates(' --rules Rem', completions) == ['RemoveUnused']
    completions = strict([Token('src', 'rc')])
    assert shell_candidates(' --classpath a.jar:s', completions) == ['src']


def test_compopt_keeps_prefixes_open():
    assert compopt(['github:']) == ['.', 'nospace']
    assert compopt(['src' + os.sep]) == ['.', 'nospace']
    assert compopt(['RemoveUnused']) == ['.']
    assert compopt(['http:', 'https:']) == ['.']


def test_completes_rules(capsys):
    code, lines, _ = run_main(capsys, rules, 'fix --rules Rem', '15')
    assert code == 0
    assert lines == ['.', 'RemoveUnused']


def test_completes_schemes_without_a_space(capsys):
    code, lines, _ = run_main(capsys, rules, 'fix --rules git', '15')
    assert code == 0
    assert lines == ['.,nospace', 'github:']


def test_completes_flags(capsys):
    code, lines, _ = run_main(capsys, rules, 'fix --no', '8')
    assert lines == ['.', '--non-interactive']


def test_completes_paths_from_the_working_directory(capsys, tmp_path, monkeypatch):
    (tmp_path / 'build.sbt').write_text('')
    monkeypatch.chdir(tmp_path)
    code, lines, _ = run_main(capsys, rules, 'fix --config bu', '15')
    assert lines == ['.', 'build.sbt']


def test_compat_config(capsys):
    code, lines, _ = run_main(capsys, legacy, 'fix Proc', '8')
    assert lines == ['.', 'ProcedureSyntax']
    code, lines, _ = run_main(capsys, legacy, 'fix --', '6')
    assert lines == ['.']


def test_cursor_on_the_command(capsys):
    code, lines, _ = run_main(capsys, rules, 'fix --test', '1')
    assert code == 0
    assert lines == ['.']


def test_parses_arguments(capsys):
    code, lines, _ = run_main(capsys, rules, 'fix --test --rules RemoveUnused')
    assert code == 0
    assert lines == ['--test', '--rules', 'RemoveUnused']


def test_reports_parse_errors(capsys):
    code, lines, err = run_main(capsys, rules, 'fix --exclude [x')
    assert code == 1
    assert lines == []
    assert 'ERROR: column 11' in err


def test_usage(capsys):
    code, lines, err = run_main(capsys)
    assert code == 1
    assert 'USAGE' in err


def test_unexpected_errors(capsys):
    code, lines, err = run_main(capsys, 'no/such/config.py', 'fix', '3')
    assert code == -1
    assert 'ERROR' in err


def test_directories_complete_without_a_space(capsys, tmp_path, monkeypatch):
    (tmp_path / 'src').mkdir()
    monkeypatch.chdir(tmp_path)
    code, lines, _ = run_main(capsys, rules, 'fix --config sr', '15')
    assert lines == ['.,nospace', 'src' + os.sep]


def test_escaped_words_are_completed_whole(capsys, tmp_path, monkeypatch):
    (tmp_path / 'my dir').mkdir()
    monkeypatch.chdir(tmp_path)
    code, lines, _ = run_main(capsys, rules, 'fix --config my\\ d', '18')
    assert lines == ['.,nospace', 'my\\ dir' + os.sep]


def test_config_rule_without_a_description(tmp_path):
    path = tmp_path / 'bare.py'
    path.write_text('# RuleOnly\n# RuleWithText  Does things.\n\ncompat = True\n')
    config = Config(str(path))
    assert config.catalog.list_rules() == [('RuleOnly', ''), ('RuleWithText', 'Does things.')]


def test_module_header_compiles_cleanly():
    source = open(os.path.join(os.path.dirname(example), 'fixcompletion.py')).read()
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        compile(source, 'fixcompletion.py', 'exec')
