r""" Command line interface: ``hmmkit train``, ``hmmkit decode`` and ``hmmkit score``. """
import argparse
import json
import logging
import sys

from . import __version__, tasks
from .util.exceptions import TrainingError
from .util.platform import module_available

log = logging.getLogger(__name__)

#: Errors reported as a one-line message with exit code 1.
HANDLED_ERRORS = (OSError, ValueError, KeyError, ArithmeticError, TrainingError)


def _progress(enabled):
    if enabled and module_available('tqdm'):
        from tqdm.auto import tqdm
        return tqdm
    return None


def _read_follow(path):
    if path is None:
        return None
    with open(path, 'r') as f:
        return json.load(f)


def setup_train(parser):
    parser.add_argument('manifest', help='dataset manifest listing JSON-lines observation files')
    parser.add_argument('model_in', help='initial set of nets (JSON)')
    parser.add_argument('model_out', help='output path of the trained set (JSON)')
    parser.add_argument('--dictionary', help='JSON object mapping labels to lists of net names')
    parser.add_argument('--maxit', type=int, default=10, help='maximum number of iterations (default: %(default)s)')
    parser.add_argument('--accuracy', type=float, default=None,
                        help='stop once the log-likelihood gain falls below this value')
    parser.add_argument('--no-update-transitions', dest='update_transitions', action='store_false',
                        help='keep the transitions of the emitting states')
    parser.add_argument('--no-update-init', dest='update_init', action='store_false',
                        help='keep the transitions out of the entry states')
    parser.add_argument('--no-update-outputs', dest='update_outputs', action='store_false',
                        help='keep the emitters')
    parser.add_argument('--use-alignments', action='store_true',
                        help='supervised training from the alignment trees of the sequences')
    parser.add_argument('-j', '--n-jobs', type=int, default=1, help='number of worker processes')
    parser.add_argument('--progress', action='store_true', help='show a progress bar (requires tqdm)')


def main_train(args):
    model = tasks.train(args.manifest, args.model_in, args.model_out, dictionary=args.dictionary,
                        maxit=args.maxit, accuracy=args.accuracy, update_transitions=args.update_transitions,
                        update_init=args.update_init, update_outputs=args.update_outputs,
                        use_alignments=args.use_alignments, n_jobs=args.n_jobs, progress=_progress(args.progress))
    print(f"log-likelihood: {model.likelihood}")


def setup_decode(parser):
    parser.add_argument('manifest', help='dataset manifest listing JSON-lines observation files')
    parser.add_argument('model', help='set of nets (JSON)')
    parser.add_argument('-o', '--output', help='results file (JSON lines), written to stdout if omitted')
    parser.add_argument('--dictionary', help='JSON object mapping labels to lists of net names')
    parser.add_argument('--follow', help='JSON object mapping net names to the names of allowed successors')


def main_decode(args):
    results = tasks.decode(args.manifest, args.model, results_out=args.output, dictionary=args.dictionary,
                           follow=_read_follow(args.follow))
    if args.output is None:
        for r in results:
            print(json.dumps(r))


def setup_score(parser):
    parser.add_argument('results', help='results file written by the decode command')
    parser.add_argument('--split-dash', action='store_true', help='cut hypothesis tokens at their first dash')


def main_score(args):
    tasks.score(args.results, split_dash=args.split_dash, out=sys.stdout)


COMMANDS = {
    'train': (setup_train, main_train, 'Train a set of nets with embedded Baum-Welch.'),
    'decode': (setup_decode, main_decode, 'Decode observation sequences with a set of nets.'),
    'score': (setup_score, main_score, 'Compute the token accuracy of decoding results.'),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='hmmkit', description='Hidden Markov model toolkit.')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='increase verbosity, repeat for debug output')
    subparsers = parser.add_subparsers(title='possible commands', metavar='<cmd>')
    subparsers.required = True
    for name, (setup, main_fn, help_text) in COMMANDS.items():
        subparser = subparsers.add_parser(name, help=help_text)
        setup(subparser)
        subparser.set_defaults(func=main_fn)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else logging.INFO if args.verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    try:
        args.func(args)
    except HANDLED_ERRORS as e:
        log.debug("Command failed.", exc_info=True)
        print(f"hmmkit: error: {e}", file=sys.stderr)
        return 1
    return 0
