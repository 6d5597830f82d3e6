import pathlib as pl

from minimesos.cluster import architecture
from minimesos.cluster import cluster_config
from minimesos.cluster import mesos_cluster
from minimesos.cluster import repository


def _start_cluster(gateway) -> mesos_cluster.MesosCluster:
    cluster = mesos_cluster.MesosCluster(
        architecture.ClusterArchitecture.from_config(cluster_config.ClusterConfig(timeout=1)),
        gateway=gateway,
    )
    cluster.start()
    return cluster


def test_save_and_load(gateway, tmp_path: pl.Path):
    repo = repository.ClusterRepository()
    assert repo.get_cluster_id() == ""
    assert repo.load_cluster(gateway=gateway) is None

    cluster = _start_cluster(gateway)
    repo.save_cluster_id(cluster)
    assert repo.cluster_file == tmp_path / ".minimesos" / "minimesos.cluster"
    assert repo.cluster_file.read_text() == cluster.cluster_id
    assert repo.get_cluster_id() == cluster.cluster_id

    loaded = repo.load_cluster(gateway=gateway)
    assert loaded == cluster
    assert loaded is not None
    assert loaded.running


def test_overwrite(gateway, tmp_path: pl.Path):
    repo = repository.ClusterRepository(host_dir=tmp_path / "host")
    first = _start_cluster(gateway)
    second = _start_cluster(gateway)
    repo.save_cluster_id(first)
    repo.save_cluster_id(second)
    assert repo.get_cluster_id() == second.cluster_id


def test_stale_cluster(gateway):
    repo = repository.ClusterRepository()
    cluster = _start_cluster(gateway)
    repo.save_cluster_id(cluster)
    cluster.stop()

    assert repo.load_cluster(gateway=gateway) is None
    assert not repo.cluster_file.exists()


def test_delete_cluster_file(gateway):
    repo = repository.ClusterRepository()
    repo.delete_cluster_file()

    repo.save_cluster_id(_start_cluster(gateway))
    repo.delete_cluster_file()
    assert repo.get_cluster_id() == ""
