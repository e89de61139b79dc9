"""Unit tests for the deep belief network orchestration.

This test suite validates pretraining in both modes, label-augmented
training, inference, the classifier bridge and persistence.
"""

import copy
import io
import tempfile
import unittest
import sys
from pathlib import Path

import numpy as np

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from deepbelief.config import NetworkConfig, ParallelConfig, RBMConfig
from deepbelief.data import make_pattern_dataset
from deepbelief.layers import RBM, Layer, MaxPoolingLayer
from deepbelief.network import DeepBeliefNetwork, augment_with_labels, one_hot
from deepbelief.tracking import Watcher


class RecordingWatcher(Watcher):
    """Keep every event in order."""

    def __init__(self, ignore_sub=False):
        self.ignore_sub = ignore_sub
        self.events = []

    def pretraining_begin(self, network, max_epochs):
        self.events.append(('pretraining_begin', max_epochs))

    def pretrain_layer(self, network, index, layer, sample_count):
        self.events.append(('pretrain_layer', index, sample_count))

    def pretrain_batch(self, network, index, batch):
        self.events.append(('pretrain_batch', index, batch))

    def epoch_end(self, layer_index, layer, epoch, error, momentum):
        self.events.append(('epoch_end', layer_index, epoch))

    def pretraining_end(self, network):
        self.events.append(('pretraining_end',))


class StubTrainer:
    def __init__(self, calls):
        self.calls = calls

    def init_training(self, layer):
        self.calls.append('init_training')

    def make_context(self):
        self.calls.append('make_context')
        return {}

    def init_epoch(self, epoch, layer):
        self.calls.append(('init_epoch', epoch))

    def train_sub(self, batch, context, layer):
        self.calls.append(('train_sub', batch.shape))

    def finalize_epoch(self, epoch, context, layer):
        self.calls.append(('finalize_epoch', epoch))

    def finalize_training(self, layer):
        self.calls.append('finalize_training')


class StubLayer(Layer):
    """Fixed random projection whose training only records its calls."""

    def __init__(self, n_in, n_out, seed=0):
        self._in = n_in
        self._out = n_out
        self.W = np.random.RandomState(seed).random_sample((n_in, n_out))
        self.calls = []

    @property
    def input_size(self):
        return self._in

    @property
    def output_size(self):
        return self._out

    def activate_hidden(self, visible):
        return np.dot(visible, self.W) / self._in

    def train(self, data, max_epochs, watcher=None, layer_index=None):
        self.calls.append(('train', np.asarray(data).shape, max_epochs))

    def make_trainer(self, watcher=None, layer_index=None):
        return StubTrainer(self.calls)


def small_rbm_stack():
    config = RBMConfig(batch_size=10)
    return [RBM(6, 4, config=config, random_state=0), RBM(4, 3, config=config, random_state=1)]


class TestStructure(unittest.TestCase):
    """Test construction and introspection."""

    def setUp(self):
        self.dbn = DeepBeliefNetwork([RBM(8, 4), MaxPoolingLayer(4, 2), RBM(2, 2)])

    def test_sizes(self):
        self.assertEqual(len(self.dbn), 3)
        self.assertEqual(self.dbn.input_size, 8)
        self.assertEqual(self.dbn.output_size, 2)
        self.assertEqual(self.dbn.full_output_size, 4 + 2 + 2)
        self.assertEqual(self.dbn.parameters(), (8 * 4 + 12) + (2 * 2 + 4))

    def test_layers_are_fixed(self):
        self.assertIsInstance(self.dbn.layers, tuple)
        self.assertIs(self.dbn.layer(1), self.dbn.layers[1])

    def test_empty_stack(self):
        with self.assertRaises(AssertionError):
            DeepBeliefNetwork([])

    def test_display(self):
        text = self.dbn.display()
        self.assertTrue(text.startswith("DBN with 3 layers"))
        self.assertIn("MaxPoolingLayer(2): 4 -> 2", text)
        self.assertTrue(text.endswith(f"Total parameters: {self.dbn.parameters()}"))

    def test_not_copyable(self):
        with self.assertRaises(TypeError):
            copy.copy(self.dbn)
        with self.assertRaises(TypeError):
            copy.deepcopy(self.dbn)

    def test_width_mismatch(self):
        dbn = DeepBeliefNetwork([RBM(6, 4), RBM(5, 2)])
        with self.assertRaises(AssertionError):
            dbn.pretrain(np.zeros((10, 6)), max_epochs=1)


class TestPretraining(unittest.TestCase):
    """Test full and memory-saving pretraining."""

    def setUp(self):
        self.X = np.random.RandomState(0).randint(0, 2, size=(40, 6)).astype(float)

    def test_watcher_order(self):
        watcher = RecordingWatcher()
        dbn = DeepBeliefNetwork(small_rbm_stack(), watcher=watcher)
        dbn.pretrain(self.X, max_epochs=2)

        self.assertEqual(watcher.events, [
            ('pretraining_begin', 2),
            ('pretrain_layer', 0, 40),
            ('epoch_end', 0, 0),
            ('epoch_end', 0, 1),
            ('pretrain_layer', 1, 40),
            ('epoch_end', 1, 0),
            ('epoch_end', 1, 1),
            ('pretraining_end',)
        ])

    def test_ignore_sub(self):
        watcher = RecordingWatcher(ignore_sub=True)
        dbn = DeepBeliefNetwork(small_rbm_stack(), watcher=watcher)
        dbn.pretrain(self.X, max_epochs=2)

        self.assertNotIn('epoch_end', [event[0] for event in watcher.events])

    def test_batched_watcher_order(self):
        watcher = RecordingWatcher()
        config = NetworkConfig(save_memory=True, batch_size=2)
        dbn = DeepBeliefNetwork(small_rbm_stack(), config=config, watcher=watcher)
        dbn.pretrain(self.X, max_epochs=1)

        # Big batches of 2 x 10 samples
        self.assertEqual(watcher.events, [
            ('pretraining_begin', 1),
            ('pretrain_layer', 0, 40),
            ('pretrain_batch', 0, 0),
            ('pretrain_batch', 0, 1),
            ('epoch_end', 0, 0),
            ('pretrain_layer', 1, 40),
            ('pretrain_batch', 1, 0),
            ('pretrain_batch', 1, 1),
            ('epoch_end', 1, 0),
            ('pretraining_end',)
        ])

    def test_memory_saving_matches_full(self):
        full = DeepBeliefNetwork(small_rbm_stack())
        full.pretrain(self.X, max_epochs=3)

        batched = DeepBeliefNetwork(
            small_rbm_stack(),
            config=NetworkConfig(save_memory=True, batch_size=2)
        )
        batched.pretrain(self.X, max_epochs=3)

        for a, b in zip(full.layers, batched.layers):
            np.testing.assert_allclose(a.W, b.W)
            np.testing.assert_allclose(a.hidden_bias, b.hidden_bias)
            np.testing.assert_allclose(a.visible_bias, b.visible_bias)

    def test_memory_saving_matches_full_with_pooling(self):
        """Pooling in the stack, a partial last big batch and the thread pool."""
        X = np.random.RandomState(1).randint(0, 2, size=(45, 8)).astype(float)
        config = RBMConfig(batch_size=7)

        def stack():
            return [
                RBM(8, 4, config=config, random_state=0),
                MaxPoolingLayer(4, 2),
                RBM(2, 3, config=config, random_state=1)
            ]

        full = DeepBeliefNetwork(stack())
        full.pretrain(X, max_epochs=3)

        # Big batches of 3 x 7 = 21 samples: 21, 21, 3
        batched_config = NetworkConfig(
            save_memory=True,
            batch_size=3,
            parallel=ParallelConfig(is_parallel=True, n_workers=4)
        )
        with DeepBeliefNetwork(stack(), config=batched_config) as batched:
            batched.pretrain(X, max_epochs=3)

            for a, b in zip(full.layers, batched.layers):
                if not a.is_pooling:
                    np.testing.assert_allclose(a.W, b.W)
                    np.testing.assert_allclose(a.hidden_bias, b.hidden_bias)
                    np.testing.assert_allclose(a.visible_bias, b.visible_bias)

    def test_empty_samples_both_modes(self):
        for save_memory in (False, True):
            watcher = RecordingWatcher()
            layers = small_rbm_stack()
            before = [layer.W.copy() for layer in layers]

            dbn = DeepBeliefNetwork(layers, config=NetworkConfig(save_memory=save_memory), watcher=watcher)
            dbn.pretrain([], max_epochs=2)

            for layer, weights in zip(layers, before):
                np.testing.assert_array_equal(layer.W, weights)
            self.assertEqual(watcher.events[0], ('pretraining_begin', 2))
            self.assertEqual(watcher.events[-1], ('pretraining_end',))
            self.assertIn(('pretrain_layer', 0, 0), watcher.events)

    def test_parallel_matches_sequential(self):
        sequential = DeepBeliefNetwork(small_rbm_stack())
        sequential.pretrain(self.X, max_epochs=2)

        config = NetworkConfig(parallel=ParallelConfig(is_parallel=True, n_workers=3))
        with DeepBeliefNetwork(small_rbm_stack(), config=config) as parallel:
            parallel.pretrain(self.X, max_epochs=2)
            for a, b in zip(sequential.layers, parallel.layers):
                np.testing.assert_allclose(a.W, b.W)

    def test_pooling_layers_skipped(self):
        X = np.random.RandomState(0).randint(0, 2, size=(20, 8)).astype(float)
        for save_memory in (False, True):
            watcher = RecordingWatcher()
            dbn = DeepBeliefNetwork(
                [RBM(8, 4, random_state=0), MaxPoolingLayer(4, 2), RBM(2, 2, random_state=1)],
                config=NetworkConfig(save_memory=save_memory),
                watcher=watcher
            )
            dbn.pretrain(X, max_epochs=1)

            trained = [event[1] for event in watcher.events if event[0] == 'pretrain_layer']
            self.assertEqual(trained, [0, 2])

    def test_top_pooling_layer(self):
        """A pooling layer on top ends pretraining after the layer below."""
        watcher = RecordingWatcher()
        dbn = DeepBeliefNetwork([RBM(6, 4), MaxPoolingLayer(4, 2)], watcher=watcher)
        dbn.pretrain(self.X, max_epochs=1)

        trained = [event[1] for event in watcher.events if event[0] == 'pretrain_layer']
        self.assertEqual(trained, [0])

    def test_batched_trainer_protocol(self):
        first = StubLayer(4, 3, seed=0)
        second = StubLayer(3, 2, seed=1)
        dbn = DeepBeliefNetwork([first, second], config=NetworkConfig(save_memory=True, batch_size=4))
        dbn.pretrain(np.ones((10, 4)), max_epochs=2)

        epoch = lambda e: [
            'make_context', ('init_epoch', e),
            ('train_sub', (4, 3)), ('train_sub', (4, 3)), ('train_sub', (2, 3)),
            ('finalize_epoch', e)
        ]
        self.assertEqual(
            second.calls,
            ['init_training'] + epoch(0) + epoch(1) + ['finalize_training']
        )

    def test_stub_chain_end_to_end(self):
        X = np.random.RandomState(3).random_sample((12, 4))
        layers = [StubLayer(4, 3, seed=0), StubLayer(3, 2, seed=1)]
        dbn = DeepBeliefNetwork(layers)
        dbn.pretrain(X, max_epochs=5)

        self.assertEqual(layers[0].calls, [('train', (12, 4), 5)])
        self.assertEqual(layers[1].calls, [('train', (12, 3), 5)])

        expected = np.dot(np.dot(X[0], layers[0].W) / 4, layers[1].W) / 3
        np.testing.assert_allclose(dbn.activation_probabilities(X[0]), expected)
        self.assertEqual(dbn.predict(X[0]), int(np.argmax(expected)))
        self.assertEqual(dbn.predict(X[0]), dbn.predict(X[0]))


class TestLabels(unittest.TestCase):
    """Test label helpers and label-augmented training."""

    def test_one_hot(self):
        np.testing.assert_array_equal(one_hot(1, 3), [0.0, 1.0, 0.0])

    def test_one_hot_out_of_range(self):
        with self.assertRaises(AssertionError):
            one_hot(3, 3)

    def test_augment_with_labels(self):
        augmented = augment_with_labels(np.full((2, 2), 0.5), [1, 0], 2)
        np.testing.assert_array_equal(augmented, [[0.5, 0.5, 0, 1], [0.5, 0.5, 1, 0]])

    def test_train_with_labels(self):
        X, y = make_pattern_dataset(n_samples=40, n_features=6, random_state=0)
        watcher = RecordingWatcher()
        top = RBM(4 + 2, 3, random_state=1)
        before = top.W.copy()

        dbn = DeepBeliefNetwork([RBM(6, 4, random_state=0), top], watcher=watcher)
        dbn.train_with_labels(X, y, label_count=2, max_epochs=2)

        self.assertFalse(np.allclose(top.W, before))
        trained = [event for event in watcher.events if event[0] == 'pretrain_layer']
        self.assertEqual(trained, [('pretrain_layer', 0, 40), ('pretrain_layer', 1, 40)])

        label = dbn.predict_labels(X[0], label_count=2)
        self.assertIn(label, (0, 1))

    def test_train_with_labels_empty(self):
        dbn = DeepBeliefNetwork([RBM(6, 4, random_state=0), RBM(6, 3, random_state=1)])
        dbn.train_with_labels([], [], label_count=2, max_epochs=1)

    def test_train_with_labels_activates_in_bulk(self):
        class BulkStub(StubLayer):
            def activate_many(self, data):
                self.calls.append(('activate_many', np.asarray(data).shape))
                return super().activate_many(data)

        bottom = BulkStub(4, 3, seed=0)
        top = StubLayer(3 + 2, 2, seed=1)
        dbn = DeepBeliefNetwork([bottom, top])
        dbn.train_with_labels(np.ones((6, 4)), [0, 1, 0, 1, 0, 1], label_count=2, max_epochs=1)

        self.assertEqual(bottom.calls, [('train', (6, 4), 1), ('activate_many', (6, 4))])
        self.assertEqual(top.calls, [('train', (6, 5), 1)])

    def test_label_count_must_be_positive(self):
        dbn = DeepBeliefNetwork([RBM(4, 3), RBM(3, 2)])
        with self.assertRaises(AssertionError):
            dbn.predict_labels(np.ones(4), label_count=0)
        with self.assertRaises(AssertionError):
            dbn.train_with_labels(np.ones((2, 4)), [0, 0], label_count=0, max_epochs=1)

    def test_no_room_for_labels(self):
        X, y = make_pattern_dataset(n_samples=10, n_features=6)
        dbn = DeepBeliefNetwork([RBM(6, 4), RBM(4, 3)])
        with self.assertRaises(AssertionError):
            dbn.train_with_labels(X, y, label_count=2, max_epochs=1)

    def test_label_count_mismatch(self):
        dbn = DeepBeliefNetwork([RBM(6, 4), RBM(6, 3)])
        with self.assertRaises(AssertionError):
            dbn.train_with_labels(np.zeros((4, 6)), [0, 1, 0], label_count=2, max_epochs=1)

    def test_predict_labels_reads_reconstructed_labels(self):
        bottom = RBM(2, 1)
        bottom.W[:] = 0.0
        top = RBM(3, 2)
        top.W[:] = 0.0
        top.visible_bias = np.array([0.0, -1.0, 2.0])

        dbn = DeepBeliefNetwork([bottom, top])
        self.assertEqual(dbn.predict_labels(np.ones(2), label_count=2), 1)

        top.visible_bias = np.array([5.0, 2.0, -1.0])
        self.assertEqual(dbn.predict_labels(np.ones(2), label_count=2), 0)


class TestInference(unittest.TestCase):
    """Test activation and prediction."""

    def setUp(self):
        self.dbn = DeepBeliefNetwork([RBM(8, 4, random_state=0), MaxPoolingLayer(4, 2), RBM(2, 3, random_state=1)])
        self.sample = np.random.RandomState(0).random_sample(8)

    def test_predict_label(self):
        self.assertEqual(DeepBeliefNetwork.predict_label(np.array([0.1, 0.9, 0.3])), 1)
        self.assertEqual(DeepBeliefNetwork.predict_label(np.array([0.5, 0.5])), 0)

    def test_full_activation(self):
        full = self.dbn.full_activation_probabilities(self.sample)
        self.assertEqual(full.shape, (self.dbn.full_output_size,))

        first = self.dbn.layer(0).activate_one(self.sample)
        pooled = self.dbn.layer(1).activate_one(first)
        np.testing.assert_allclose(full[:4], first)
        np.testing.assert_allclose(full[4:6], pooled)
        np.testing.assert_allclose(full[6:], self.dbn.activation_probabilities(self.sample))

    def test_final_activation(self):
        self.assertEqual(self.dbn.get_final_activation_probabilities(self.sample).shape, (3,))

        self.dbn.config.concatenate = True
        self.assertEqual(self.dbn.get_final_activation_probabilities(self.sample).shape, (9,))

    def test_predict(self):
        expected = int(np.argmax(self.dbn.activation_probabilities(self.sample)))
        self.assertEqual(self.dbn.predict(self.sample), expected)

    def test_sample_width(self):
        with self.assertRaises(AssertionError):
            self.dbn.predict(np.zeros(7))


class FakeTuner:
    created = []

    def __init__(self, config, watcher=None):
        self.config = config
        self.watcher = watcher
        FakeTuner.created.append(self)

    def train(self, network, samples, labels, max_epochs, batch_size):
        self.args = (network, len(samples), list(labels), max_epochs, batch_size)
        return 0.25


class TestFineTuneDispatch(unittest.TestCase):
    """Test delegation to the fine-tuner."""

    def test_dispatch(self):
        FakeTuner.created = []
        watcher = RecordingWatcher()
        dbn = DeepBeliefNetwork(small_rbm_stack(), watcher=watcher, fine_tuner_factory=FakeTuner)

        error = dbn.fine_tune(np.zeros((3, 6)), [0, 1, 2], max_epochs=4, batch_size=2)

        self.assertEqual(error, 0.25)
        tuner = FakeTuner.created[0]
        self.assertIs(tuner.config, dbn.config)
        self.assertIs(tuner.watcher, watcher)
        self.assertEqual(tuner.args, (dbn, 3, [0, 1, 2], 4, 2))

    def test_label_count_mismatch(self):
        dbn = DeepBeliefNetwork(small_rbm_stack(), fine_tuner_factory=FakeTuner)
        with self.assertRaises(AssertionError):
            dbn.fine_tune(np.zeros((3, 6)), [0, 1], max_epochs=1, batch_size=1)


class TestClassifierBridge(unittest.TestCase):
    """Test SVM training and prediction on extracted features."""

    def setUp(self):
        self.X, self.y = make_pattern_dataset(n_samples=60, n_features=8, random_state=0)
        self.dbn = DeepBeliefNetwork([RBM(8, 6, random_state=0), RBM(6, 4, random_state=1)])
        self.dbn.pretrain(self.X, max_epochs=3)

    def test_svm_train_and_predict(self):
        self.assertTrue(self.dbn.svm_train(self.X, self.y))
        self.assertTrue(self.dbn.svm_loaded)
        self.assertEqual(self.dbn.problem.features.shape, (60, 4))
        self.assertIn(self.dbn.svm_predict(self.X[0]), (0, 1))

    def test_concatenated_features(self):
        self.dbn.config.concatenate = True
        problem = self.dbn.make_problem(self.X, self.y)
        self.assertEqual(problem.features.shape, (60, 10))
        self.assertIs(self.dbn.problem, problem)

    def test_invalid_problem_leaves_state(self):
        self.assertFalse(self.dbn.svm_train(self.X, np.zeros(60, dtype=int)))
        self.assertFalse(self.dbn.svm_loaded)
        self.assertIsNone(self.dbn.svm_model)
        self.assertIsNone(self.dbn.problem)

    def test_predict_without_classifier(self):
        with self.assertRaises(AssertionError):
            self.dbn.svm_predict(self.X[0])

    def test_grid_search(self):
        from deepbelief.classifier import RBFGrid

        grid = RBFGrid(c_range=(-1, 1, 2), gamma_range=(1, -1, -2))
        self.assertTrue(self.dbn.svm_grid_search(self.X, self.y, n_fold=3, grid=grid))
        self.assertEqual(len(self.dbn.grid_results), 4)
        self.assertEqual(self.dbn.svm_parameters.kernel, 'rbf')
        self.assertIn(self.dbn.svm_parameters.C, (0.5, 2.0))


class TestPersistence(unittest.TestCase):
    """Test store / load."""

    def setUp(self):
        self.X, self.y = make_pattern_dataset(n_samples=40, n_features=8, random_state=0)

    def make_network(self, seed):
        return DeepBeliefNetwork([
            RBM(8, 4, random_state=seed),
            MaxPoolingLayer(4, 2),
            RBM(2, 2, random_state=seed + 1)
        ])

    def test_round_trip_without_classifier(self):
        dbn = self.make_network(0)
        dbn.pretrain(self.X, max_epochs=2)

        buffer = io.BytesIO()
        dbn.store(buffer)
        buffer.seek(0)

        restored = self.make_network(10)
        restored.load(buffer)

        for a, b in zip(dbn.layers, restored.layers):
            if not a.is_pooling:
                np.testing.assert_array_equal(a.W, b.W)
                np.testing.assert_array_equal(a.visible_bias, b.visible_bias)
                np.testing.assert_array_equal(a.hidden_bias, b.hidden_bias)
        self.assertFalse(restored.svm_loaded)
        np.testing.assert_array_equal(
            dbn.activation_probabilities(self.X[0]),
            restored.activation_probabilities(self.X[0])
        )

    def test_round_trip_with_classifier(self):
        dbn = self.make_network(0)
        dbn.pretrain(self.X, max_epochs=2)
        self.assertTrue(dbn.svm_train(self.X, self.y))

        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / 'network.dat'
            dbn.store(path)

            restored = self.make_network(10)
            restored.load(str(path))

        self.assertTrue(restored.svm_loaded)
        for sample in self.X[:5]:
            self.assertEqual(dbn.svm_predict(sample), restored.svm_predict(sample))


if __name__ == '__main__':
    unittest.main()
