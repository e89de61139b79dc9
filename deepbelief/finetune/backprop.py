"""Supervised fine-tuning by backpropagation.

The pretrained stack is mirrored as a Keras model (one sigmoid Dense per
RBM, a 1D pooling per pooling layer), trained against one-hot targets and
copied back into the layers.
"""

import logging
from typing import List, Tuple

import numpy as np
from tensorflow import keras
from tensorflow.keras import layers, models, regularizers, callbacks

from deepbelief.config import NetworkConfig
from deepbelief.layers.pooling import AveragePoolingLayer, MaxPoolingLayer
from deepbelief.layers.rbm import RBM

logger = logging.getLogger(__name__)


def classification_error(model: models.Sequential, X: np.ndarray, y: np.ndarray) -> float:
    """Fraction of samples whose largest output is not their label."""
    if len(X) == 0:
        return 0.0
    predictions = np.argmax(model.predict(X, verbose=0), axis=1)
    return float(np.mean(predictions != y))


class BackpropFineTuner:
    """Mini-batch gradient descent with momentum on a mirrored network.

    Parameters
    ----------
    config : NetworkConfig
        Provides learning rate, momentum schedule and weight cost.
    watcher : Watcher, optional
        Receives the fine-tuning events.
    """

    def __init__(self, config: NetworkConfig, watcher=None):
        self.config = config
        self.watcher = watcher

    def build_model(self, network) -> Tuple[models.Sequential, List[Tuple[RBM, layers.Dense]]]:
        """Mirror ``network`` as a Keras Sequential model.

        Returns
        -------
        model : Sequential
            Uncompiled model initialised from the layer weights.
        pairs : list of (RBM, Dense)
            Every RBM with the Dense layer holding its weights.
        """
        model = models.Sequential()
        model.add(layers.Input(shape=(network.input_size,)))

        pairs = []
        for layer in network.layers:
            if isinstance(layer, RBM):
                dense = layers.Dense(
                    layer.output_size,
                    activation='sigmoid',
                    kernel_regularizer=regularizers.l2(self.config.weight_cost / 2)
                )
                model.add(dense)
                pairs.append((layer, dense))
            elif isinstance(layer, (MaxPoolingLayer, AveragePoolingLayer)):
                pooling = layers.MaxPooling1D if isinstance(layer, MaxPoolingLayer) \
                    else layers.AveragePooling1D
                model.add(layers.Reshape((layer.input_size, 1)))
                model.add(pooling(pool_size=layer.pool_size, strides=layer.pool_size))
                model.add(layers.Flatten())
            else:
                raise ValueError(f"Cannot fine-tune layers of type {type(layer).__name__}")

        for rbm, dense in pairs:
            dense.set_weights([rbm.W.astype(np.float32), rbm.hidden_bias.astype(np.float32)])

        return model, pairs

    def _phases(self, max_epochs: int) -> List[Tuple[int, int, float]]:
        """(first epoch, end epoch, momentum) runs of constant momentum."""
        switch = min(max(self.config.final_momentum_epoch, 0), max_epochs)
        phases = [
            (0, switch, self.config.initial_momentum),
            (switch, max_epochs, self.config.final_momentum)
        ]
        return [phase for phase in phases if phase[1] > phase[0]]

    def train(self, network, samples, labels, max_epochs: int, batch_size: int) -> float:
        """Fine-tune ``network`` in place.

        Parameters
        ----------
        network : DeepBeliefNetwork
            Pretrained network.
        samples : sequence
            Raw training samples.
        labels : sequence of int
            One label in ``[0, network.output_size)`` per sample.
        max_epochs : int
            Number of passes over the data.
        batch_size : int
            Mini-batch size.

        Returns
        -------
        error : float
            Classification error rate after the last epoch.
        """
        assert len(samples) == len(labels), "There must be the same number of samples and labels"
        assert batch_size > 0, "batch_size must be positive"
        assert max_epochs >= 0, "max_epochs must be non-negative"

        X = network.layer(0).convert_input(samples).astype(np.float32)
        y = np.asarray(labels, dtype=np.int64).ravel()
        assert np.all((y >= 0) & (y < network.output_size)), \
            f"Labels must be in [0, {network.output_size})"
        Y = keras.utils.to_categorical(y, num_classes=network.output_size).astype(np.float32)

        model, pairs = self.build_model(network)
        watcher = self.watcher
        errors = [classification_error(model, X, y)]

        # Report classification error to the watcher after every epoch
        class ErrorCallback(callbacks.Callback):
            def on_epoch_end(self, epoch, logs=None):
                error = classification_error(self.model, X, y)
                errors.append(error)
                logger.debug(f"Fine-tuning epoch {epoch + 1}: error={error:.6f}")
                if watcher is not None:
                    watcher.fine_tuning_epoch_end(network, epoch, error)

        if watcher is not None:
            watcher.fine_tuning_begin(network, max_epochs)

        # One compilation per momentum value; velocities restart at the switch
        for first, end, momentum in self._phases(max_epochs):
            model.compile(
                optimizer=keras.optimizers.SGD(
                    learning_rate=self.config.learning_rate,
                    momentum=momentum
                ),
                loss='binary_crossentropy'
            )
            model.fit(
                X, Y,
                initial_epoch=first,
                epochs=end,
                batch_size=batch_size,
                shuffle=False,
                callbacks=[ErrorCallback()],
                verbose=0
            )

        for rbm, dense in pairs:
            kernel, bias = dense.get_weights()
            rbm.W = kernel.astype(np.float64)
            rbm.hidden_bias = bias.astype(np.float64)

        error = errors[-1]
        if watcher is not None:
            watcher.fine_tuning_end(network, error)

        return error
