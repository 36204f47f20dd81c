# Copyright (c) 2025.
# This file is part of lingauss, released under the MIT License.

import time
import jax.numpy as jnp

from lingauss.core.factor_graph import FactorGraph
from lingauss.inference.elimination import Factorization
from lingauss.inference.marginals import Marginals
from lingauss.linear.noise_model import Diagonal, Isotropic
from lingauss.slam.measurements import prior_residual, odom_residual


def build_pose_chain(num_poses: int = 100, loop_every: int = 10):
    """
    Planar chain of 2-D points with periodic loop closures:

        p0 --odom--> p1 --odom--> ... --odom--> p_{N-1}
        p_k <--loop--> p_{k + loop_every}

    - Prior on p0 at the origin.
    - Odometry along +x with anisotropic noise.
    - Loop closures with a wider isotropic noise.
    """
    fg = FactorGraph()
    fg.register_residual("prior", prior_residual)
    fg.register_residual("odom", odom_residual)

    ids = []
    for i in range(num_poses):
        init_val = jnp.array([float(i) + 0.05 * jnp.sin(0.3 * i), 0.1 * jnp.cos(0.2 * i)])
        ids.append(fg.new_variable("point2", init_val))

    fg.new_factor(
        "prior",
        (ids[0],),
        {"target": jnp.zeros(2), "noise_model": Diagonal.from_sigmas([0.01, 0.01])},
    )

    odom_model = Diagonal.from_sigmas([0.1, 0.05])
    for i in range(num_poses - 1):
        fg.new_factor(
            "odom",
            (ids[i], ids[i + 1]),
            {"measurement": jnp.array([1.0, 0.0]), "noise_model": odom_model},
        )

    loop_model = Isotropic.from_sigma(2, 0.5)
    for i in range(0, num_poses - loop_every, loop_every):
        fg.new_factor(
            "odom",
            (ids[i], ids[i + loop_every]),
            {"measurement": jnp.array([float(loop_every), 0.0]), "noise_model": loop_model},
        )

    return fg, ids


def run_benchmark(num_poses: int = 100, factorization: Factorization = Factorization.CHOLESKY):
    print("=== Marginal Covariance Benchmark ===")
    print(f"num_poses = {num_poses}, factorization = {factorization.name}")

    fg, ids = build_pose_chain(num_poses)
    values = fg.initial_values()

    t0 = time.time()
    marginals = Marginals(fg, values, factorization)
    t1 = time.time()
    print(f"Linearize + eliminate: {(t1 - t0) * 1000.0:.3f} ms")

    t0 = time.time()
    for nid in ids:
        marginals.marginal_covariance(nid)
    t1 = time.time()
    print(f"All single marginals:  {(t1 - t0) * 1000.0:.3f} ms")

    t0 = time.time()
    joint = marginals.joint_marginal_covariance([ids[0], ids[-1]])
    t1 = time.time()
    print(f"Joint (first, last):   {(t1 - t0) * 1000.0:.3f} ms")

    t0 = time.time()
    marginals.joint_marginal_covariance(ids[:: max(1, num_poses // 4)])
    t1 = time.time()
    print(f"Joint (4+ keys):       {(t1 - t0) * 1000.0:.3f} ms")

    # Quick sanity check: uncertainty grows along the chain
    print(f"cov(p0):      {marginals.marginal_covariance(ids[0]).diagonal()}")
    print(f"cov(pN-1):    {marginals.marginal_covariance(ids[-1]).diagonal()}")
    print(f"cov(p0,pN-1): {joint.at(ids[0], ids[-1])}")


if __name__ == "__main__":
    # Example:
    #   PYTHONPATH=src python3 benchmarks/bench_marginals.py
    run_benchmark(num_poses=100, factorization=Factorization.CHOLESKY)
    run_benchmark(num_poses=100, factorization=Factorization.QR)
