"""Deep belief network.

A DeepBeliefNetwork owns an ordered stack of layers (index 0 is closest to
the raw input) and drives their training and inference:

- pretrain: unsupervised, layer by layer, each layer learning from the
  activations of the layer below. Either every layer input is materialized
  (two datasets in memory at a time) or, with ``config.save_memory``, the
  raw samples are re-propagated one big batch at a time.
- train_with_labels: same, but the input of the top layer is the
  activation of the layer below concatenated with a one-hot label.
- fine_tune: supervised refinement delegated to a fine-tuner.
- activation_probabilities / predict / predict_labels: inference.
- svm_*: a classifier trained on the extracted features.

Every layer only talks to the network; the network never depends on the
concrete layer types.

Example:
    >>> from deepbelief import DeepBeliefNetwork, NetworkConfig
    >>> from deepbelief.layers import RBM
    >>> dbn = DeepBeliefNetwork([RBM(784, 500), RBM(500, 10)], NetworkConfig())
    >>> dbn.pretrain(X_train, max_epochs=10)
    >>> dbn.predict(X_test[0])
    7
"""

import dataclasses
import io
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

import joblib
import numpy as np

from deepbelief.classifier import svm
from deepbelief.config import NetworkConfig
from deepbelief.layers.base import Layer
from deepbelief.parallel import make_parallel_map
from deepbelief.tracking.logger import log_success
from deepbelief.tracking.watcher import Watcher

logger = logging.getLogger(__name__)


def one_hot(label, label_count: int) -> np.ndarray:
    """Vector of ``label_count`` zeros with a 1.0 at index ``label``."""
    label = int(label)
    assert 0 <= label < label_count, f"Label {label} out of range [0, {label_count})"

    encoded = np.zeros(label_count)
    encoded[label] = 1.0
    return encoded


def augment_with_labels(activations, labels, label_count: int) -> np.ndarray:
    """Append the one-hot encoding of each label to its activation row.

    Parameters
    ----------
    activations : array-like
        (n_samples, width) activations.
    labels : sequence of int
        One label per row.
    label_count : int
        Number of label units.

    Returns
    -------
    augmented : np.ndarray
        (n_samples, width + label_count) matrix.
    """
    activations = np.asarray(activations, dtype=np.float64)
    assert len(activations) == len(labels), \
        "There must be as many labels as activation rows"

    n_samples, width = activations.shape
    augmented = np.zeros((n_samples, width + label_count))
    augmented[:, :width] = activations
    for i, label in enumerate(labels):
        augmented[i, width:] = one_hot(label, label_count)

    return augmented


class DeepBeliefNetwork:
    """Stack of layers trained one layer at a time.

    Parameters
    ----------
    layers : sequence of Layer
        The stack, input side first. Its length is fixed for the life of
        the network.
    config : NetworkConfig, optional
        Network configuration. Defaults to ``NetworkConfig()``.
    watcher : Watcher, optional
        Receives the training lifecycle events. Defaults to a no-op watcher.
    fine_tuner_factory : callable, optional
        ``factory(config, watcher=...)`` returning an object with
        ``train(network, samples, labels, max_epochs, batch_size)``.
        Defaults to :class:`deepbelief.finetune.BackpropFineTuner`.

    Attributes
    ----------
    svm_model : sklearn.pipeline.Pipeline or None
        Trained (or loaded) classifier.
    problem : SVMProblem or None
        Last classifier problem built from extracted features.
    svm_loaded : bool
        Whether a classifier is present (and therefore stored).
    svm_parameters : SVMParameters
        Parameters used by svm_train, updated by svm_grid_search.
    """

    def __init__(
        self,
        layers: Sequence[Layer],
        config: Optional[NetworkConfig] = None,
        watcher: Optional[Watcher] = None,
        fine_tuner_factory: Optional[Callable] = None
    ):
        assert len(layers) > 0, "A network needs at least one layer"

        self._layers: Tuple[Layer, ...] = tuple(layers)
        self.config = config if config is not None else NetworkConfig()
        self.config.validate()
        self.watcher = watcher if watcher is not None else Watcher()
        self.fine_tuner_factory = fine_tuner_factory

        self.pool = make_parallel_map(self.config.parallel)

        self.svm_model = None
        self.problem = None
        self.svm_loaded = False
        self.svm_parameters = svm.default_svm_parameters(self.config.svm)
        self.grid_results = None

    # Ownership

    def __copy__(self):
        raise TypeError("DeepBeliefNetwork cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("DeepBeliefNetwork cannot be copied")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self) -> None:
        """Release the worker pool."""
        self.pool.shutdown()

    # Introspection

    def __len__(self) -> int:
        return len(self._layers)

    @property
    def layers(self) -> Tuple[Layer, ...]:
        return self._layers

    def layer(self, index: int) -> Layer:
        return self._layers[index]

    @property
    def input_size(self) -> int:
        return self._layers[0].input_size

    @property
    def output_size(self) -> int:
        return self._layers[-1].output_size

    @property
    def full_output_size(self) -> int:
        """Width of the concatenation of every layer output."""
        return sum(layer.output_size for layer in self._layers)

    def parameters(self) -> int:
        return sum(layer.parameters() for layer in self._layers)

    def display(self) -> str:
        """Log and return a description of the stack."""
        lines = [f"DBN with {len(self)} layers"]
        lines += [f"    {layer.display()}" for layer in self._layers]
        lines.append(f"Total parameters: {self.parameters()}")

        for line in lines:
            logger.info(line)
        return "\n".join(lines)

    def check_widths(self, label_count: int = 0) -> None:
        """Assert that every layer input matches the output below it.

        With ``label_count``, the top layer must also have room for that
        many label units on top of the output of the layer below.
        """
        last = len(self._layers) - 1
        for index in range(last):
            provided = self._layers[index].output_size
            if label_count and index == last - 1:
                provided += label_count

            expected = self._layers[index + 1].input_size
            if label_count and index == last - 1:
                assert expected == provided, (
                    f"There is no room for the labels units: layer {last} expects "
                    f"{expected} inputs, layer {index} provides "
                    f"{self._layers[index].output_size} + {label_count} labels"
                )
            else:
                assert expected == provided, (
                    f"Layer {index + 1} expects {expected} inputs but layer "
                    f"{index} provides {provided}"
                )

    # Pretraining

    def _train_next(self, index: int) -> bool:
        """Whether pretraining continues into the layer at ``index``."""
        last = len(self._layers) - 1
        if index < last:
            return True
        if index == last:
            return self._layers[index].pretrain_last
        return False

    def _sub_watcher(self) -> Optional[Watcher]:
        return None if self.watcher.ignore_sub else self.watcher

    def _activate_all(self, layer: Layer, data) -> np.ndarray:
        """Activation of ``layer`` for every row of ``data``, index-aligned."""
        output = layer.prepare_output(len(data))
        self.pool.map_into(layer.activate_one, data, output)
        return output

    def _propagate(self, vector: np.ndarray, first: int, last: int) -> np.ndarray:
        """Chain ``activate_one`` through layers ``first..last-1``."""
        for layer in self._layers[first:last]:
            vector = layer.activate_one(vector)
        return vector

    def pretrain(self, samples: Sequence, max_epochs: int) -> None:
        """Pretrain every layer in an unsupervised manner.

        Parameters
        ----------
        samples : sequence
            Raw training samples (a sequence supporting ``len`` and slicing,
            e.g. a list or an array).
        max_epochs : int
            Epochs per layer.
        """
        self.check_widths()

        self.watcher.pretraining_begin(self, max_epochs)

        if self.config.save_memory:
            logger.info("Pretraining done in batch mode to save memory")
            self._pretrain_batched(samples, max_epochs)
        else:
            self._pretrain_full(samples, max_epochs)

        self.watcher.pretraining_end(self)

    def _pretrain_full(self, samples, max_epochs: int) -> None:
        data = self._layers[0].convert_input(samples)

        for index, layer in enumerate(self._layers):
            if not layer.is_pooling:
                self.watcher.pretrain_layer(self, index, layer, len(data))
                layer.train(data, max_epochs, watcher=self._sub_watcher(), layer_index=index)

            if not self._train_next(index + 1):
                break

            # Input of the next layer; the previous buffer is released here
            data = self._activate_all(layer, data)

    def _pretrain_batched(self, samples, max_epochs: int) -> None:
        for index, layer in enumerate(self._layers):
            if index > 0 and not self._train_next(index):
                break
            if layer.is_pooling:
                continue

            self.watcher.pretrain_layer(self, index, layer, len(samples))
            self._pretrain_layer_batched(index, layer, samples, max_epochs)

    def _pretrain_layer_batched(self, index: int, layer: Layer, samples, max_epochs: int) -> None:
        trainer = layer.make_trainer(watcher=self._sub_watcher(), layer_index=index)
        trainer.init_training(layer)

        big_batch_size = self.config.batch_size * layer.batch_size

        for epoch in range(max_epochs):
            context = trainer.make_context()
            trainer.init_epoch(epoch, layer)

            for big_batch, start in enumerate(range(0, len(samples), big_batch_size)):
                batch = self._big_batch_input(index, samples[start:start + big_batch_size])
                trainer.train_sub(batch, context, layer)
                self.watcher.pretrain_batch(self, index, big_batch)

            trainer.finalize_epoch(epoch, context, layer)

        trainer.finalize_training(layer)

    def _big_batch_input(self, index: int, raw_batch) -> np.ndarray:
        """Input of layer ``index`` for one slice of raw samples.

        Layers below ``index`` are re-run on every big batch of every
        epoch: only one big batch of activations is held at a time, at the
        cost of recomputing them (depth x epochs x batches activations).
        """
        converted = self._layers[0].convert_input(raw_batch)
        if index == 0:
            return converted

        output = self._layers[index - 1].prepare_output(len(converted))
        self.pool.map_into(lambda v: self._propagate(v, 0, index), converted, output)
        return output

    # Label-augmented training

    def train_with_labels(
        self,
        samples: Sequence,
        labels: Sequence,
        label_count: int,
        max_epochs: int
    ) -> None:
        """Pretrain with the labels injected into the top layer input.

        Every layer is trained as in full pretraining, except that the input
        of the top layer is the activation of the layer below followed by
        ``label_count`` one-hot label units.

        Parameters
        ----------
        samples : sequence
            Raw training samples.
        labels : sequence of int
            One label in ``[0, label_count)`` per sample.
        label_count : int
            Number of label units.
        max_epochs : int
            Epochs per layer.
        """
        assert len(samples) == len(labels), "There must be the same number of samples and labels"
        assert label_count > 0, "label_count must be positive"
        assert len(self._layers) >= 2, "Training with labels needs at least two layers"
        assert not self._layers[-1].is_pooling, "The top layer cannot be a pooling layer"
        self.check_widths(label_count)

        self.watcher.pretraining_begin(self, max_epochs)

        data = self._layers[0].convert_input(samples)
        last = len(self._layers) - 1

        for index, layer in enumerate(self._layers):
            if not layer.is_pooling:
                self.watcher.pretrain_layer(self, index, layer, len(data))
                layer.train(data, max_epochs, watcher=self._sub_watcher(), layer_index=index)

            if index == last:
                break

            activated = layer.activate_many(data)
            if index == last - 1:
                data = augment_with_labels(activated, labels, label_count)
            else:
                data = activated

        self.watcher.pretraining_end(self)

    # Inference

    def activation_probabilities(self, sample) -> np.ndarray:
        """Output of the top layer for one raw sample."""
        vector = self._layers[0].convert_sample(sample)
        return self._propagate(vector, 0, len(self._layers))

    def full_activation_probabilities(self, sample) -> np.ndarray:
        """Outputs of every layer for one raw sample, concatenated in order."""
        vector = self._layers[0].convert_sample(sample)

        result = np.zeros(self.full_output_size)
        position = 0
        for layer in self._layers:
            vector = layer.activate_one(vector)
            result[position:position + layer.output_size] = vector
            position += layer.output_size

        return result

    def get_final_activation_probabilities(self, sample) -> np.ndarray:
        """Features of one sample: every layer if ``config.concatenate``, else the top."""
        if self.config.concatenate:
            return self.full_activation_probabilities(sample)
        return self.activation_probabilities(sample)

    @staticmethod
    def predict_label(result) -> int:
        """Index of the largest value (first one on ties)."""
        return int(np.argmax(result))

    def predict(self, sample) -> int:
        return self.predict_label(self.activation_probabilities(sample))

    def predict_labels(self, sample, label_count: int) -> int:
        """Predict with a network trained by ``train_with_labels``.

        The sample is propagated up to the layer below the top; its output
        is extended with ``label_count`` units set to 0.1, the top layer is
        activated and its input reconstructed, and the label is the largest
        of the reconstructed label units.
        """
        assert label_count > 0, "label_count must be positive"
        assert len(self._layers) >= 2, "Predicting labels needs at least two layers"
        self.check_widths(label_count)

        last = len(self._layers) - 1
        vector = self._layers[0].convert_sample(sample)

        for index, layer in enumerate(self._layers[:last]):
            hidden = layer.activate_hidden(vector)

            if index == last - 1:
                vector = layer.prepare_one_output(is_last=True, labels=label_count)
                vector[:layer.output_size] = hidden
                vector[layer.output_size:] = 0.1
            else:
                vector = hidden

        top = self._layers[last]
        reconstruction = top.activate_visible(top.activate_hidden(vector))

        return self.predict_label(reconstruction[-label_count:])

    # Fine-tuning

    def fine_tune(self, samples: Sequence, labels: Sequence, max_epochs: int, batch_size: int) -> float:
        """Fine-tune the pretrained network on labelled data.

        Returns
        -------
        error : float
            Final error reported by the fine-tuner.
        """
        assert len(samples) == len(labels), "There must be the same number of samples and labels"

        factory = self.fine_tuner_factory
        if factory is None:
            from deepbelief.finetune import BackpropFineTuner
            factory = BackpropFineTuner

        trainer = factory(self.config, watcher=self.watcher)
        return trainer.train(self, samples, labels, max_epochs, batch_size)

    # Classifier

    def _features(self, samples: Sequence) -> np.ndarray:
        width = self.full_output_size if self.config.concatenate else self.output_size

        features = np.zeros((len(samples), width))
        self.pool.map_into(self.get_final_activation_probabilities, samples, features)
        return features

    def make_problem(self, samples: Sequence, labels: Sequence, scale: Optional[bool] = None):
        """Build (and keep) the classifier problem from extracted features."""
        if scale is None:
            scale = self.config.scale

        self.problem = svm.make_problem(labels, self._features(samples), scale)
        return self.problem

    def svm_train(self, samples: Sequence, labels: Sequence, parameters=None) -> bool:
        """Train the classifier on the features of ``samples``.

        Returns
        -------
        trained : bool
            False if the problem or parameters are invalid; the classifier
            state is left untouched in that case.
        """
        start_time = time.time()

        if parameters is None:
            parameters = self.svm_parameters

        problem = svm.make_problem(labels, self._features(samples), self.config.scale)
        if not svm.check(problem, parameters):
            return False

        self.problem = problem
        self.svm_model = svm.train(problem, parameters)
        self.svm_loaded = True

        log_success(logger, f"SVM training took {time.time() - start_time:.1f}s")
        return True

    def svm_grid_search(
        self,
        samples: Sequence,
        labels: Sequence,
        n_fold: Optional[int] = None,
        grid: Optional[svm.RBFGrid] = None
    ) -> bool:
        """Grid-search C and gamma of an RBF classifier.

        On success the best values become ``svm_parameters`` and the full
        results table is kept in ``grid_results``.
        """
        if n_fold is None:
            n_fold = self.config.svm.n_fold

        problem = svm.make_problem(labels, self._features(samples), self.config.scale)
        parameters = dataclasses.replace(self.svm_parameters)

        if not svm.check(problem, parameters):
            return False

        self.grid_results = svm.rbf_grid_search(problem, parameters, n_fold, grid)
        self.svm_parameters = parameters
        return True

    def svm_predict(self, sample):
        assert self.svm_loaded, "No classifier has been trained or loaded"
        return svm.predict(self.svm_model, self.get_final_activation_probabilities(sample))

    # Persistence

    def store(self, target) -> None:
        """Write every non-pooling layer, in order, then the classifier if any.

        Parameters
        ----------
        target : str, Path or binary file object
        """
        if isinstance(target, (str, Path)):
            with open(target, 'wb') as fh:
                self.store(fh)
            return

        for layer in self._layers:
            if not layer.is_pooling:
                layer.store(target)

        if self.svm_loaded:
            # joblib rewinds non-peekable streams, so the classifier is
            # stored as its own byte block
            buffer = io.BytesIO()
            joblib.dump(self.svm_model, buffer)
            np.save(target, np.frombuffer(buffer.getvalue(), dtype=np.uint8), allow_pickle=False)

    def load(self, source) -> None:
        """Read what :meth:`store` wrote, in the same order.

        Parameters
        ----------
        source : str, Path or seekable binary file object
        """
        if isinstance(source, (str, Path)):
            with open(source, 'rb') as fh:
                self.load(fh)
            return

        for layer in self._layers:
            if not layer.is_pooling:
                layer.load(source)

        position = source.tell()
        if source.read(1):
            source.seek(position)
            block = np.load(source, allow_pickle=False)
            self.svm_model = joblib.load(io.BytesIO(block.tobytes()))
            self.svm_loaded = True
