r"""
.. currentmodule: hmmkit.tasks

File based training, decoding and scoring, as used by the command line interface.

A dataset is described by a manifest: a text file listing one JSON-lines observation file per line, relative
paths are resolved against the directory of the manifest. Empty lines and lines starting with ``#`` are
ignored.

.. autosummary::
    :toctree: generated/

    read_manifest
    load_dataset
    train
    decode
    score
"""
import json
import logging
import os
from typing import Dict, List, Optional

from .hmm import BaumWelchTrainer, DictionaryAssigner, DirectAssigner, EmbeddedHMM, HMMSet
from .hmm import decode as decode_sequence
from .io import load_model, read_observations, save_model
from .metrics import AccuracyScore
from .util.data import ObservationSequence
from .util.exceptions import ReaderIOError, SEQUENCE_ERRORS, SerializationError

log = logging.getLogger(__name__)


def read_manifest(path) -> List[str]:
    r""" Paths of the observation files listed in a manifest. """
    try:
        with open(path, 'r') as f:
            lines = [line.strip() for line in f]
    except OSError as e:
        raise ReaderIOError(f"Cannot read manifest '{path}': {e}") from e
    base = os.path.dirname(os.path.abspath(path))
    return [os.path.join(base, line) for line in lines if line and not line.startswith('#')]


def load_dataset(manifest) -> List[ObservationSequence]:
    r""" All observation sequences of the files listed in a manifest, in manifest order. """
    observations = []
    for path in read_manifest(manifest):
        part = read_observations(path)
        log.debug("Read %d sequences from %s.", len(part), path)
        observations.extend(part)
    log.info("Loaded %d sequences from manifest %s.", len(observations), manifest)
    return observations


def load_dictionary(path) -> DictionaryAssigner:
    r""" Reads a JSON object mapping labels to lists of net names. """
    try:
        with open(path, 'r') as f:
            dictionary = json.load(f)
    except OSError as e:
        raise ReaderIOError(f"Cannot read dictionary '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise SerializationError(f"Malformed dictionary '{path}': {e}") from e
    if not isinstance(dictionary, dict):
        raise SerializationError(f"Dictionary '{path}' must be a JSON object")
    return DictionaryAssigner(dictionary)


def _load_set(path) -> HMMSet:
    model = load_model(path)
    if not isinstance(model, HMMSet):
        raise SerializationError(f"'{path}' does not contain a set of nets")
    return model


def train(manifest, model_in, model_out, dictionary=None, maxit: int = 10, accuracy: Optional[float] = None,
          update_transitions: bool = True, update_init: bool = True, update_outputs: bool = True,
          use_alignments: bool = False, n_jobs: int = 1, progress=None) -> EmbeddedHMM:
    r""" Trains the set of nets stored in `model_in` on a dataset and stores the result in `model_out`.

    Parameters
    ----------
    manifest : str or path-like
        Dataset manifest.
    model_in : str or path-like
        JSON file with the initial set of nets.
    model_out : str or path-like
        Output JSON file.
    dictionary : str or path-like, optional, default=None
        JSON file mapping labels to net names, labels are used as net names if None.
    maxit, accuracy, update_transitions, update_init, update_outputs, use_alignments, n_jobs, progress
        See :class:`BaumWelchTrainer <hmmkit.hmm.BaumWelchTrainer>`.

    Returns
    -------
    model : EmbeddedHMM
        The trained model.
    """
    assigner = load_dictionary(dictionary) if dictionary is not None else None
    trainer = BaumWelchTrainer(_load_set(model_in), assigner=assigner, update_transitions=update_transitions,
                               update_init=update_init, update_outputs=update_outputs,
                               use_alignments=use_alignments, maxit=maxit, accuracy=accuracy, n_jobs=n_jobs,
                               progress=progress)
    model = trainer.fit_fetch(load_dataset(manifest))
    log.info("Trained on %d sequence updates, %d failed; final log-likelihood %s.",
             model.n_updates, model.n_failed_updates, model.likelihood)
    save_model(model.hmm_set, model_out)
    return model


def decode(manifest, model, results_out=None, dictionary=None, follow=None) -> List[Dict]:
    r""" Decodes every sequence of a dataset with the search graph of a set of nets.

    Parameters
    ----------
    manifest : str or path-like
        Dataset manifest.
    model : str or path-like
        JSON file with the set of nets.
    results_out : str or path-like, optional, default=None
        If given, the results are written there as JSON lines.
    dictionary : str or path-like, optional, default=None
        JSON file mapping labels to net names, used to expand the references.
    follow : mapping of str to sequence of str, optional, default=None
        Allowed successors per net, a full mesh if None.

    Returns
    -------
    results : list of dict
        One :code:`{"id", "ref", "hyp"}` object per sequence; the reference is the transcript expanded to net
        names, the hypothesis the sequence of decoded nets.
        Sequences which cannot be decoded, e.g., because of a dimension mismatch or zero likelihood, are
        skipped with a warning.
    """
    hmm_set = _load_set(model)
    assigner = load_dictionary(dictionary) if dictionary is not None else DirectAssigner()
    graph = hmm_set.search_graph(follow=follow)
    results = []
    for observation in load_dataset(manifest):
        try:
            result = decode_sequence(graph, observation.vectors)
            ref = assigner.assign(observation.transcript())
        except SEQUENCE_ERRORS as e:
            log.warning("Skipping sequence '%s': %s", observation.id, e)
            continue
        results.append({"id": observation.id, "ref": ref, "hyp": result.transcript})
        log.debug("Decoded %s with log-probability %.4f.", observation.id, result.log_prob)
    if results_out is not None:
        try:
            with open(results_out, 'w') as f:
                for r in results:
                    f.write(json.dumps(r) + '\n')
        except OSError as e:
            raise ReaderIOError(f"Cannot write results to '{results_out}': {e}") from e
    return results


def read_results(path) -> List[Dict]:
    r""" Reads the JSON-lines results written by :func:`decode`. """
    results = []
    try:
        with open(path, 'r') as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    r = json.loads(line)
                except json.JSONDecodeError as e:
                    raise SerializationError(f"Malformed JSON in '{path}' line {lineno}: {e}") from e
                for key in ("ref", "hyp"):
                    if key not in r:
                        raise SerializationError(f"Missing field in '{path}' line {lineno}", field=key)
                results.append(r)
    except OSError as e:
        raise ReaderIOError(f"Cannot read results '{path}': {e}") from e
    return results


def score(results, split_dash: bool = False, out=None) -> AccuracyScore:
    r""" Scores decoding results.

    Parameters
    ----------
    results : str or path-like or list of dict
        A results file written by :func:`decode` or its parsed content.
    split_dash : bool, optional, default=False
        Whether hypothesis tokens are cut at their first dash.
    out : file-like, optional, default=None
        If given, one line per utterance and a final average line are written to it.

    Returns
    -------
    score : AccuracyScore
        The accumulated counts, :meth:`AccuracyScore.total` gives the overall accuracy.
    """
    if not isinstance(results, list):
        results = read_results(results)
    scorer = AccuracyScore(split_dash=split_dash)
    for r in results:
        acc = scorer.session(r["ref"], r["hyp"])
        if out is not None:
            out.write(f"ID: {r.get('id', '')}, acc: {acc:.4f}\n")
    if out is not None:
        out.write(f"\nAVG: acc: {scorer.total():.4f}\n")
    return scorer
