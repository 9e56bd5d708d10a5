import abc
from collections import defaultdict
from inspect import signature
from typing import Optional

from sklearn.utils._pprint import _EstimatorPrettyPrinter


class _BaseMethodsMixin(abc.ABC):
    """ Defines common methods used by both Estimator and Model classes: parameter introspection for
    configuration and a version-tagged pickling protocol.
    """

    def __repr__(self):
        name = '{cls}-{id}:'.format(id=id(self), cls=self.__class__.__name__)
        printer = _EstimatorPrettyPrinter(compact=True, indent=1, indent_at_name=True)
        params = ', '.join('{}={}'.format(key, printer.pformat(value))
                           for key, value in sorted(self.get_params().items()))
        return '{name}[{params}]'.format(name=name, params=params)

    def get_params(self, deep=False):
        r"""Get the parameters.

        Returns
        -------
        params : mapping of string to any
            Parameter names mapped to their values.
        """
        params = dict()

        cls = self.__class__
        init_sign = signature(cls.__init__)
        args, varargs = [], []
        for parameter in init_sign.parameters.values():
            if parameter.kind != parameter.VAR_KEYWORD and parameter.name != 'self':
                args.append(parameter.name)
            if parameter.kind == parameter.VAR_POSITIONAL:
                varargs.append(parameter.name)

        if len(varargs) != 0:
            raise RuntimeError("hmmkit estimators and models should always specify their parameters in the "
                               "signature of their __init__ (no varargs). %s doesn't follow this convention."
                               % (cls,))
        for arg in args:
            params[arg] = getattr(self, arg, None)
        return params

    def set_params(self, **params):
        """
        Set the parameters of this estimator. Nested parameters are addressed as
        ``<component>__<parameter>``.

        Parameters
        ----------
        **params : dict
            Estimator parameters.

        Returns
        -------
        self : object
            Estimator instance.
        """
        if not params:
            return self
        valid_params = self.get_params(deep=True)

        nested_params = defaultdict(dict)
        for key, value in params.items():
            key, delim, sub_key = key.partition('__')
            if key not in valid_params:
                raise ValueError('Invalid parameter %s for estimator %s. '
                                 'Check the list of available parameters '
                                 'with `estimator.get_params().keys()`.' %
                                 (key, self))

            if delim:
                nested_params[key][sub_key] = value
            else:
                setattr(self, key, value)
                valid_params[key] = value

        for key, sub_params in nested_params.items():
            valid_params[key].set_params(**sub_params)

        return self

    def __getstate__(self):
        try:
            state = super().__getstate__()
        except AttributeError:
            state = self.__dict__
        if state is None:
            state = self.__dict__

        if type(self).__module__.startswith('hmmkit.'):
            from hmmkit import __version__
            return dict(state.items(), _hmmkit_version=__version__)
        else:
            return state

    def __setstate__(self, state):
        from hmmkit import __version__
        if type(self).__module__.startswith('hmmkit.'):
            pickle_version = state.pop("_hmmkit_version", None)
            if pickle_version != __version__:
                import warnings
                warnings.warn(
                    "Trying to unpickle {0} from version {1} when using version {2}. This might lead to "
                    "breaking code or invalid results. Use at your own risk.".format(
                        self.__class__.__name__, pickle_version, __version__),
                    UserWarning)
        self.__dict__.update(state)


class Model(_BaseMethodsMixin):
    r""" The model superclass. """

    def copy(self) -> "Model":
        r""" Makes a deep copy of this model.

        Returns
        -------
        copy
            A new copy of this model.
        """
        import copy
        return copy.deepcopy(self)


class Estimator(_BaseMethodsMixin):
    r""" Base class of all estimators

    Parameters
    ----------
    model : Model, optional, default=None
        A model which can be used for initialization. Estimators which are capable of resuming an estimation
        (e.g., by running more Baum-Welch iterations) use it as starting point.
    """

    """ class wide flag to control whether input of fit or partial_fit should be checked for modifications """
    _MUTABLE_INPUT_DATA = False

    def __init__(self, model=None):
        self._model = model

    @abc.abstractmethod
    def fit(self, data, **kwargs):
        r""" Fits data to the estimator's internal :class:`Model` and overwrites it. This way, every call to
        :meth:`fetch_model` yields an autonomous model instance.

        Parameters
        ----------
        data : array_like
            Data that is used to fit a model.
        **kwargs
            Additional kwargs.

        Returns
        -------
        self : Estimator
            Reference to self.
        """

    def fetch_model(self) -> Optional[Model]:
        r""" Yields the estimated model. Can be None if :meth:`fit` was not called.

        Returns
        -------
        model : Model or None
            The estimated model or None.
        """
        return self._model

    def fit_fetch(self, data, **kwargs):
        r""" Fits the internal model on data and subsequently fetches it in one call.

        Parameters
        ----------
        data : array_like
            Data that is used to fit the model.
        **kwargs
            Additional arguments to :meth:`fit`.

        Returns
        -------
        model
            The estimated model.
        """
        self.fit(data, **kwargs)
        return self.fetch_model()

    @property
    def model(self):
        """ Shortcut to :meth:`fetch_model`. """
        return self.fetch_model()

    @property
    def has_model(self) -> bool:
        r""" Property reporting whether this estimator contains an estimated model. This assumes that the model
        is initialized with `None` otherwise.

        :type: bool
        """
        return self._model is not None

    def __getattribute__(self, item):
        if (item == 'fit' or item == 'partial_fit') and not self._MUTABLE_INPUT_DATA:
            fit = super(Estimator, self).__getattribute__(item)
            return _ImmutableInputData(fit)

        return super(_BaseMethodsMixin, self).__getattribute__(item)


class _ImmutableInputData:
    """A function decorator for Estimator.fit() to make observation arrays read-only while fitting. """

    def __init__(self, fit_method):
        self.fit_method = fit_method
        self._data = None
        self.old_writable_flags = []

    @property
    def data(self):
        return self._data

    @data.setter
    def data(self, value_):
        import numpy as np
        from .util.data import ObservationSequence
        args, kwargs = value_
        self._data = []

        if len(args) == 0:
            if 'data' in kwargs:
                args = [kwargs['data']]
            elif len(kwargs) == 1:
                args = [kwargs[k] for k in kwargs.keys()]
            else:
                raise InputFormatError(f'No input at all for fit(). Input was {args}, kw={kwargs}')
        value = args[0]
        if isinstance(value, ObservationSequence):
            self._data.append(value.vectors)
        elif isinstance(value, np.ndarray):
            self._data.append(value)
        elif isinstance(value, (list, tuple)):
            for i, x in enumerate(value):
                if isinstance(x, ObservationSequence):
                    self._data.append(x.vectors)
                elif isinstance(x, np.ndarray):
                    self._data.append(x)
                else:
                    raise InputFormatError(f'Invalid input element in position {i}, only ObservationSequence '
                                           f'or numpy.ndarray allowed but got {type(x)}.')
        elif isinstance(value, (Model, Estimator)):
            self._data.append(value)
        elif not hasattr(value, '__iter__'):
            raise InputFormatError(f'Only observation sequences, ndarrays, lists/tuples thereof or iterables '
                                   f'of observation sequences are allowed. But was of type {type(value)}.')
        # other iterables (e.g., observation readers) are streamed and cannot be locked

    def __enter__(self):
        import numpy as np
        self.old_writable_flags = []
        for d in self.data:
            if isinstance(d, np.ndarray):
                self.old_writable_flags.append(d.flags.writeable)
                try:
                    d.setflags(write=False)
                except ValueError:
                    # arrays that do not own their memory cannot always be locked
                    pass
            else:
                self.old_writable_flags.append(None)

    def __exit__(self, exc_type, exc_val, exc_tb):
        import numpy as np
        for d, writable in zip(self.data, self.old_writable_flags):
            if isinstance(d, np.ndarray):
                try:
                    d.setflags(write=writable)
                except ValueError:
                    pass

    def __call__(self, *args, **kwargs):
        self.data = args, kwargs
        with self:
            return self.fit_method(*args, **kwargs)


class InputFormatError(ValueError):
    """Input data for Estimator is not allowed."""
