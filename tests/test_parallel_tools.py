import numpy as np
import pytest
from mbbpnnlib.parallel_tools import ParallelTools


@pytest.mark.parametrize("size, nclusters", [(1, 5), (3, 7), (4, 2)])
def test_split_batch_covers_all_configs(size, nclusters):
    pt = ParallelTools()
    blocks = []
    for rank in range(size):
        pt._size = size
        pt._rank = rank
        blocks.append(pt.split_batch(nclusters))
    covered = [c for block in blocks for c in range(nclusters)[block]]
    assert covered == list(range(nclusters))
    lengths = [block.stop - block.start for block in blocks]
    assert max(lengths) - min(lengths) <= 1


def test_gather_batch_serial():
    pt = ParallelTools()
    if pt.get_size() > 1:
        pytest.skip("serial only")
    array = np.arange(6.0).reshape(2, 3)
    assert pt.gather_batch(array, axis=1) is array
