import pytest

import fixcompletion


class FakeRepository:

    def __init__(self, commits=(), refs=()):
        self.commits = list(commits)
        self.refs    = set(refs)
        self.limits  = []

    def recent_commits(self, limit):
        self.limits.append(limit)
        return self.commits[:limit]

    def branches_and_tags(self):
        return set(self.refs)


@pytest.fixture
def catalog():
    return fixcompletion.Catalog([
        ('ProcedureSyntax', 'Replaces deprecated procedure syntax.'),
        ('RemoveUnused',    'Removes unused imports and terms.'),
        ('RedundantSyntax', 'Removes redundant syntax.'),
    ])


@pytest.fixture
def repository():
    return FakeRepository(
        commits = [('fix bug', 'abc123'), ('add feature', 'abcdef'), ('initial', '0123ff')],
        refs    = ['main', 'feature/paths', 'v1.0'],
    )


@pytest.fixture
def context(tmp_path, catalog, repository):
    (tmp_path / 'src').mkdir()
    (tmp_path / 'src' / 'Main.scala').write_text('object Main')
    (tmp_path / 'src' / 'Model.scala').write_text('object Model')
    (tmp_path / 'build.sbt').write_text('')
    (tmp_path / 'build.properties').write_text('')
    return fixcompletion.make_context(
        cwd        = str(tmp_path),
        catalog    = catalog,
        repository = repository,
        width      = 80,
    )
