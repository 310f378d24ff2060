''':'
declare -gA _FIXCOMPLETION_CONFIGS
_FIXCOMPLETION_SOURCE="$(readlink -f "${BASH_SOURCE[0]}")"
autocomplete()
{
    if [ $# != 2 ]
    then
        echo "USAGE: autocomplete <command> <config-path>"
        return 1
    fi
    _FIXCOMPLETION_CONFIGS["$1"]="$(readlink -f "$2")"
    complete -F _fixcompletion "$1"
}
_fixcompletion()
{
    local IFS=$'\n'
    local CONFIG_PATH="${_FIXCOMPLETION_CONFIGS[$1]}"
    local FLAG
    COMPREPLY=( $(python "$_FIXCOMPLETION_SOURCE" "$CONFIG_PATH" "$COMP_LINE" "$COMP_POINT") )
    # Some special behaviour (like not adding a space after 'github:' or a directory)
    # must be done in bash on-demand, so the first line is reserved for compopt.
    for FLAG in $(echo "${COMPREPLY[0]}" | tr ',' '\n')
    do
        if [ "$FLAG" = "." ]
        then
            continue
        fi
        compopt -o "$FLAG"
    done
    COMPREPLY=( "${COMPREPLY[@]:1}" )
}
return
'''

import collections
import importlib.util
import os
import re
import shutil
import subprocess
import sys
import traceback


history_limit = 20
default_width = 80
git_timeout   = 2
uri_schemes   = ('github', 'replace', 'http', 'https', 'scala')
word_breaks   = ':='


# Completion tokens.


class Token(collections.namedtuple('Token', 'display append')):

    def truncate(self, width):
        # Only the display is shortened; what gets inserted never changes.
        return self._replace(display=self.display[:width])


class Completions:

    def __init__(self, tokens=(), strict=True):
        # A set, but iteration keeps the order the candidates were ranked in.
        self.tokens = tuple(dict.fromkeys(tokens))
        self.strict = strict

    def __or__(self, other):
        return Completions(self.tokens + other.tokens, self.strict and other.strict)

    def __iter__(self):
        return iter(self.tokens)

    def __len__(self):
        return len(self.tokens)

    def __contains__(self, token):
        return token in self.tokens

    def __eq__(self, other):
        if not isinstance(other, Completions):
            return NotImplemented
        return set(self.tokens) == set(other.tokens) and self.strict == other.strict

    def __repr__(self):
        kind = 'strict' if self.strict else 'unconstrained'
        return '<Completions %s %r>' % (kind, list(self.tokens))

    def appends(self):
        return [token.append for token in self.tokens]

    def displays(self):
        return [token.display for token in self.tokens]


def strict(tokens):
    return Completions(tokens)


def unconstrained():
    return Completions(strict=False)


nothing = strict(())


# Parse outcomes. Failing is a value, not an exception: every parser returns the list
# of all the ways it matched, plus the furthest failure if there was one.


Success = collections.namedtuple('Success', 'value end')
Failure = collections.namedtuple('Failure', 'message position')


class ParseError(Exception):

    def __init__(self, message, position):
        super().__init__('column %d: %s' % (position, message))
        self.message  = message
        self.position = position


def successes(outcomes):
    return [outcome for outcome in outcomes if isinstance(outcome, Success)]


def prune(outcomes):
    # Keep every success but only the failure that got the furthest.
    failures = [outcome for outcome in outcomes if isinstance(outcome, Failure)]
    if not failures:
        return successes(outcomes)
    return successes(outcomes) + [max(failures, key=lambda failure: failure.position)]


# Grammar nodes.


class Parser:

    def parse(self, text, position, context):
        raise NotImplementedError()

    def complete(self, text, position, context):
        # Only called for text that ends at the cursor: a parser contributes candidates
        # if all of text[position:] could be the beginning of something it matches.
        raise NotImplementedError()

    def __or__(self, other):
        return Alternative(self, other)

    def map(self, function):
        return Map(self, function)


class Literal(Parser):

    def __init__(self, text):
        self.text = text

    def parse(self, text, position, context):
        if text.startswith(self.text, position):
            return [Success(self.text, position + len(self.text))]
        return [Failure('expected %r' % self.text, position)]

    def complete(self, text, position, context):
        typed = text[position:]
        if not self.text.startswith(typed):
            return nothing
        return strict([Token(self.text, self.text[len(typed):])])


class Text(Parser):
    """Unquoted text up to the next whitespace, quote or excluded character.

    A backslash escapes any one character, as in the shell. The completer is a plain
    function of what was typed so far (unescaped) and the context; without one, any
    continuation is acceptable.
    """

    def __init__(self, completer=None, exclude=''):
        plain          = r'[^\s"\'\\%s]' % re.escape(exclude)
        self.completer = completer
        self.pattern   = re.compile(r'(?:%s|\\.)+' % plain)
        self.partial   = re.compile(r'(?:%s|\\.)*\\?' % plain)

    def parse(self, text, position, context):
        match = self.pattern.match(text, position)
        if not match:
            return [Failure('expected a value', position)]
        return [Success(unescape(match.group()), match.end())]

    def complete(self, text, position, context):
        typed = text[position:]
        if not self.partial.fullmatch(typed):
            return nothing
        if self.completer is None:
            return unconstrained()
        completions = self.completer(unescape(typed), context)
        tokens      = [token._replace(append=escape(token.append)) for token in completions]
        return Completions(tokens, completions.strict)


class Quoted(Parser):

    def __init__(self, completer=None, quote='"'):
        if quote == '"':
            body = r'(?:[^"\\]|\\.)*'
        else:
            # Nothing is special between single quotes.
            body = r"[^']*"
        self.completer = completer
        self.quote     = quote
        self.pattern   = re.compile(r'%s(%s)%s' % (quote, body, quote))
        self.partial   = re.compile(r'%s(%s)\\?\Z' % (quote, body))

    def parse(self, text, position, context):
        match = self.pattern.match(text, position)
        if not match:
            return [Failure('expected a quoted string', position)]
        return [Success(self.value(match), match.end())]

    def complete(self, text, position, context):
        match = self.partial.match(text, position)
        if not match:
            return nothing
        if self.completer is None:
            return unconstrained()
        return self.completer(self.value(match), context)

    def value(self, match):
        if self.quote == '"':
            return unescape(match.group(1))
        return match.group(1)


class Space(Parser):

    pattern = re.compile(r'\s+')

    def parse(self, text, position, context):
        match = self.pattern.match(text, position)
        if not match:
            return [Failure('expected whitespace', position)]
        return [Success(match.group(), match.end())]

    def complete(self, text, position, context):
        return nothing


class Sequence(Parser):

    def __init__(self, *parsers):
        self.parsers = parsers

    def parse(self, text, position, context):
        outcomes = [Success((), position)]
        for parser in self.parsers:
            next_outcomes = []
            for outcome in outcomes:
                if isinstance(outcome, Failure):
                    next_outcomes.append(outcome)
                    continue
                for result in parser.parse(text, outcome.end, context):
                    if isinstance(result, Failure):
                        next_outcomes.append(result)
                    else:
                        next_outcomes.append(Success(outcome.value + (result.value,), result.end))
            outcomes = prune(next_outcomes)
        return outcomes

    def complete(self, text, position, context):
        completions = nothing
        positions   = [position]
        for parser in self.parsers:
            ends = []
            for start in positions:
                completions |= parser.complete(text, start, context)
                for outcome in successes(parser.parse(text, start, context)):
                    if outcome.end not in ends:
                        ends.append(outcome.end)
            positions = ends
        return completions


class Alternative(Parser):

    def __init__(self, *parsers):
        self.parsers = parsers

    def parse(self, text, position, context):
        outcomes = []
        for parser in self.parsers:
            outcomes.extend(parser.parse(text, position, context))
        return prune(outcomes)

    def complete(self, text, position, context):
        completions = nothing
        for parser in self.parsers:
            completions |= parser.complete(text, position, context)
        return completions

    def __or__(self, other):
        return Alternative(*(self.parsers + (other,)))


class Repeat(Parser):

    def __init__(self, parser):
        self.parser = parser

    def parse(self, text, position, context):
        matched  = []
        failures = []
        frontier = [Success([], position)]
        while frontier:
            matched.extend(frontier)
            next_frontier = []
            for outcome in frontier:
                for result in self.parser.parse(text, outcome.end, context):
                    if isinstance(result, Failure):
                        failures.append(result)
                    # Zero-width matches would loop forever.
                    elif result.end > outcome.end:
                        next_frontier.append(Success(outcome.value + [result.value], result.end))
            frontier = next_frontier
        # Longest first, so the greediest reading is tried first.
        return prune(matched[::-1] + failures)

    def complete(self, text, position, context):
        completions = nothing
        for outcome in successes(self.parse(text, position, context)):
            completions |= self.parser.complete(text, outcome.end, context)
        return completions


class Optional(Parser):

    def __init__(self, parser):
        self.parser = parser

    def parse(self, text, position, context):
        return prune(self.parser.parse(text, position, context) + [Success(None, position)])

    def complete(self, text, position, context):
        return self.parser.complete(text, position, context)


class Map(Parser):

    def __init__(self, parser, function):
        self.parser   = parser
        self.function = function

    def parse(self, text, position, context):
        outcomes = []
        for outcome in self.parser.parse(text, position, context):
            if isinstance(outcome, Success):
                outcome = Success(self.function(outcome.value), outcome.end)
            outcomes.append(outcome)
        return outcomes

    def complete(self, text, position, context):
        return self.parser.complete(text, position, context)


class MapOrFail(Map):

    def parse(self, text, position, context):
        outcomes = []
        for outcome in self.parser.parse(text, position, context):
            if isinstance(outcome, Success):
                try:
                    outcome = Success(self.function(outcome.value), outcome.end)
                except Exception as error:
                    outcome = Failure(str(error), position)
            outcomes.append(outcome)
        return prune(outcomes)


class Hidden(Parser):

    def __init__(self, parser):
        self.parser = parser

    def parse(self, text, position, context):
        return self.parser.parse(text, position, context)

    def complete(self, text, position, context):
        # Still accepted when typed, just never suggested.
        return nothing


class Expect(Parser):

    def __init__(self, parser, message):
        self.parser  = parser
        self.message = message

    def parse(self, text, position, context):
        outcomes = self.parser.parse(text, position, context)
        if successes(outcomes):
            return outcomes
        # None of the inner failures says what was actually wanted here.
        return [Failure(self.message, position)]

    def complete(self, text, position, context):
        return self.parser.complete(text, position, context)


class Path(Parser):

    def __init__(self, resolve=True, exclude=''):
        self.resolve = resolve
        self.value   = string_literal(complete_path, exclude)

    def parse(self, text, position, context):
        outcomes = self.value.parse(text, position, context)
        if not self.resolve:
            return outcomes
        return [
            Success(absolute_path(outcome.value, context.cwd), outcome.end)
            if isinstance(outcome, Success) else outcome
            for outcome in outcomes
        ]

    def complete(self, text, position, context):
        return self.value.complete(text, position, context)


def unescape(text):
    # A trailing lone backslash is still being typed, so it's dropped.
    return re.sub(r'\\(.?)', r'\1', text)


def escape(text):
    return re.sub(r'([\s"\'\\])', r'\\\1', text)


def string_literal(completer=None, exclude=''):
    return Text(completer, exclude) | Quoted(completer) | Quoted(completer, "'")


def key_value(key, value, short_key=None):
    keys = Literal(key)
    if short_key:
        keys = keys | Hidden(Literal(short_key))
    return Sequence(keys, Space(), value).map(lambda matched: '%s %s' % (matched[0], matched[2]))


def joined_repeat(item, separator):
    # The separator is implied by the items around it, so it's never suggested on its own.
    rest = Repeat(Sequence(Hidden(Literal(separator)), item))
    return Sequence(item, rest).map(lambda matched: separator.join([matched[0]] + [value for _, value in matched[1]]))


def compiles_as_regex(value):
    re.compile(value)
    return value


def not_a_flag(value):
    if value.startswith('-'):
        raise ValueError('unknown flag %r' % value)
    return value


# Paths.


def absolute_path(path, cwd):
    return os.path.normpath(os.path.join(cwd, path))


def path_state(typed, cwd):
    # Everything is re-derived from the full typed string on every request, so typing
    # '..' or switching to an absolute path simply re-anchors the listing.
    if not typed:
        return os.path.normpath(cwd), ''
    if typed.endswith(os.sep):
        return absolute_path(typed, cwd), ''
    directory, prefix = os.path.split(typed)
    return absolute_path(directory, cwd), prefix


def complete_path(typed, context):
    anchor, prefix = path_state(typed, context.cwd)
    try:
        names = sorted(os.listdir(anchor))
    except OSError:
        return nothing
    tokens = []
    for name in names:
        if not name.startswith(prefix):
            continue
        # Directories end with a separator so the next level can be typed straight away.
        if os.path.isdir(os.path.join(anchor, name)):
            name += os.sep
        tokens.append(Token(name, name[len(prefix):]))
    return strict(tokens)


# Rules.


class Rule(collections.namedtuple('Rule', 'kind scheme value')):

    def __str__(self):
        if self.kind == 'name':
            return self.value
        return '%s:%s' % (self.scheme, self.value)


class Catalog:

    def __init__(self, rules=()):
        self.rules = list(rules)

    def list_rules(self):
        return list(self.rules)


def complete_rule_names(typed, context):
    candidates = [(name, description) for name, description in context.catalog.list_rules() if name.startswith(typed)]
    width      = max([len(name) for name, _ in candidates] or [0])
    tokens     = []
    for name, description in candidates:
        display = name
        if description:
            display = '%s -- %s' % (name.ljust(width), description)
        tokens.append(Token(display, name[len(typed):]).truncate(context.width))
    return strict(tokens)


def uri(scheme):
    return Sequence(Literal(scheme + ':'), Text()).map(lambda matched: Rule('uri', scheme, matched[1]))


def rule_grammar():
    # Bare names can't contain ':', which is what sets them apart from the other forms.
    named = Text(complete_rule_names, exclude=':').map(lambda name: Rule('name', None, name))
    file  = Sequence(Literal('file:'), Path()).map(lambda matched: Rule('file', 'file', matched[1]))
    rules = Alternative(named, file, *[uri(scheme) for scheme in uri_schemes])
    return Expect(rules, 'not a recognized rule reference')


# Version control.


class GitRepository:

    def __init__(self, path):
        self.path = path

    def recent_commits(self, limit=history_limit):
        output  = self._git('log', '-n', str(limit), '--format=%H%x00%s -- %cr')
        commits = []
        for line in output.splitlines():
            sha1, _, summary = line.partition('\0')
            commits.append((summary, sha1))
        return commits

    def branches_and_tags(self):
        output = self._git('for-each-ref', '--format=%(refname:short)', 'refs/heads', 'refs/remotes', 'refs/tags')
        return set(output.split())

    def _git(self, *args):
        # No git, no repository or a slow one all just mean there's nothing to suggest.
        try:
            result = subprocess.run(
                ['git', '-C', self.path] + list(args),
                stdout  = subprocess.PIPE,
                stderr  = subprocess.DEVNULL,
                text    = True,
                check   = True,
                timeout = git_timeout,
            )
        except (OSError, subprocess.SubprocessError):
            return ''
        return result.stdout


def complete_git_refs(typed, context):
    commits = [(summary, sha1) for summary, sha1 in context.repository.recent_commits(history_limit) if sha1.startswith(typed)]
    tokens  = []
    for index, (summary, sha1) in enumerate(commits, 1):
        tokens.append(Token('|%2d| %s' % (index, summary), sha1[len(typed):]))
    # Commits and refs aren't deduplicated against each other: a branch named like a SHA prefix shows up twice.
    for name in sorted(context.repository.branches_and_tags()):
        if name.startswith(typed):
            tokens.append(Token(name, name[len(typed):]))
    return strict(tokens)


# Flags.


Flag = collections.namedtuple('Flag', 'key short_key value')


def flag_table():
    path       = Path()
    path_regex = MapOrFail(Path(resolve=False), compiles_as_regex)
    classpath  = joined_repeat(Path(exclude=os.pathsep), os.pathsep)
    return [
        Flag('--classpath',       None, classpath),
        Flag('--auto-classpath',  None, None),
        Flag('--config',          '-c', path),
        Flag('--diff',            None, None),
        Flag('--diff-base',       None, Text(complete_git_refs)),
        Flag('--exclude',         None, path_regex),
        Flag('--files',           '-f', path),
        Flag('--non-interactive', None, None),
        Flag('--out-from',        None, path_regex),
        Flag('--out-to',          None, path_regex),
        Flag('--rules',           '-r', rule_grammar().map(str)),
        Flag('--sourceroot',      None, path),
        Flag('--stdout',          None, None),
        Flag('--test',            None, None),
        Flag('--tool-classpath',  None, classpath),
        Flag('--help',            None, None),
        Flag('--version',         '-v', None),
        Flag('--verbose',         None, None),
    ]


def flag_grammar():
    parsers = []
    for flag in flag_table():
        if flag.value is None:
            parser = Literal(flag.key)
            if flag.short_key:
                parser = parser | Hidden(Literal(flag.short_key))
        else:
            parser = key_value(flag.key, flag.value, flag.short_key)
        parsers.append(parser)
    # The value is kept whole, so quoted paths with spaces survive the split.
    return Alternative(*parsers).map(lambda matched: matched.split(' ', 1))


# Assembly.


def grammar(compat=False):
    padding = Optional(Space())
    if compat:
        rule  = rule_grammar().map(str)
        rules = Sequence(rule, Repeat(Sequence(Space(), rule)))
        body  = Optional(rules.map(lambda matched: [matched[0]] + [value for _, value in matched[1]]))
    else:
        flag       = flag_grammar()
        positional = MapOrFail(Path(resolve=False), not_a_flag)
        flags      = Sequence(flag, Repeat(Sequence(Space(), flag)), Optional(Sequence(Space(), positional)))
        body       = Optional(
            flags.map(flatten_flags) |
            positional.map(lambda path: [path])
        )
    return Sequence(padding, body, padding).map(lambda matched: matched[1] or [])


def flatten_flags(matched):
    first, rest, trailing = matched
    args = list(first)
    for _, flag in rest:
        args.extend(flag)
    if trailing:
        args.append(trailing[1])
    return args


# Entry points.


Context = collections.namedtuple('Context', 'cwd catalog repository width')


def make_context(cwd=None, catalog=None, repository=None, width=None):
    cwd = os.path.abspath(cwd or os.getcwd())
    return Context(
        cwd        = cwd,
        catalog    = catalog if catalog is not None else Catalog(),
        repository = repository if repository is not None else GitRepository(cwd),
        width      = width or terminal_width(),
    )


def terminal_width():
    # Stdout is captured by bash while completing, so ask the terminal behind stderr.
    try:
        return os.get_terminal_size(sys.stderr.fileno()).columns or default_width
    except (AttributeError, OSError, ValueError):
        return shutil.get_terminal_size((default_width, 24)).columns


def complete(line, cursor=None, context=None, compat=False):
    if cursor is None:
        cursor = len(line)
    context = context or make_context()
    return grammar(compat).complete(line[:cursor], 0, context)


def parse(line, context=None, compat=False):
    return run(grammar(compat), line, context or make_context())


def run(parser, text, context):
    outcomes = parser.parse(text, 0, context)
    for outcome in successes(outcomes):
        if outcome.end == len(text):
            return outcome.value
    # Report whatever got the furthest; on a tie, the failure explains more than the leftover.
    furthest = max(outcomes, key=lambda outcome: (
        outcome.position if isinstance(outcome, Failure) else outcome.end,
        isinstance(outcome, Failure),
    ))
    if isinstance(furthest, Failure):
        raise ParseError(furthest.message, furthest.position)
    raise ParseError('unexpected %r' % text[furthest.end:], furthest.end)


class Config:

    def __init__(self, path):
        self.path = os.path.abspath(path)
        # Parse config's comments for the rule catalog.
        rules = []
        with open(self.path) as reader:
            for line in reader:
                line = line.strip()
                if not line:
                    continue
                if not line.startswith('#'):
                    break
                line = line[1:].strip()
                if not line:
                    continue
                name, _, description = line.partition(' ')
                rules.append((name, description.strip()))
        self.catalog = Catalog(rules)
        # Import config as a module for its settings.
        self.module = import_module(self.path)
        self.compat = bool(getattr(self.module, 'compat', False))


def import_module(path):
    name   = os.path.splitext(os.path.basename(path))[0]
    spec   = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def shell_candidates(line, completions):
    # Bash replaces the current word, and splits words on ':' and '=' too.
    word = re.split(r'(?<!\\)\s', line)[-1]
    for separator in word_breaks:
        word = word.rpartition(separator)[2]
    # Bash lists COMPREPLY as-is and inserts it too, so only the inserted text fits; rule
    # descriptions and commit summaries in Token.display don't reach the shell.
    candidates = []
    for token in completions:
        candidate = word + token.append
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


def compopt(candidates):
    flags = ['.']
    # A lone 'github:' or 'src/' is still being typed, so don't close it with a space.
    if len(candidates) == 1 and candidates[0].endswith((':', os.sep)):
        flags.append('nospace')
    return flags


def split_command(line, cursor):
    # The command itself isn't part of the grammar.
    match = re.match(r'\s*\S+', line)
    if not match:
        return '', 0
    return line[match.end():], cursor - match.end()


def echo(message, *args):
    # Anything printed to stdout is interpreted as autocompletion options, so print messages to stderr.
    sys.stderr.write(os.linesep + message % args + os.linesep)
    sys.stderr.flush()


def main(argv):
    if len(argv) not in (3, 4):
        echo('USAGE: %s <config-path> <line> [<cursor>]' % argv[0])
        return +1
    try:
        config  = Config(argv[1])
        context = make_context(catalog=config.catalog)
        if len(argv) == 3:
            arguments, _ = split_command(argv[2], 0)
            try:
                args = parse(arguments, context, config.compat)
            except ParseError as error:
                echo('ERROR: %s', error)
                return +1
            for arg in args:
                print(arg)
            return 0
        arguments, cursor = split_command(argv[2], int(argv[3]))
        if cursor < 0:
            candidates = []
        else:
            completions = complete(arguments, cursor, context, config.compat)
            candidates  = shell_candidates(arguments[:cursor], completions)
        print(','.join(compopt(candidates)))
        for candidate in candidates:
            print(candidate)
        return 0
    except Exception as error:
        echo('ERROR: %s' % error)
        traceback.print_exc()
        return -1


if __name__ == '__main__':
    sys.exit(main(sys.argv))
