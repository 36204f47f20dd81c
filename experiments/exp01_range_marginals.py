from __future__ import annotations

import jax.numpy as jnp

from lingauss.core.factor_graph import FactorGraph
from lingauss.core.values import Values
from lingauss.inference.marginals import Marginals
from lingauss.linear.noise_model import Diagonal, Isotropic
from lingauss.optimization.solvers import GNConfig, gauss_newton
from lingauss.slam.measurements import prior_residual, odom_residual, range_residual


def setup_range_world():
    """
    Build a tiny 2-D localization problem:

      - 2 anchors with tight priors:
          anchor0 ~ (0, 0)
          anchor1 ~ (4, 0)

      - 3 robot positions driving along +x:
          pose0 ~ (1, 1), pose1 ~ (2, 1), pose2 ~ (3, 1)

    Factors:
      - prior on each anchor
      - odometry pose0->pose1, pose1->pose2 (1m in x)
      - ranges from every pose to both anchors
    """
    fg = FactorGraph()

    # Register residuals
    fg.register_residual("prior", prior_residual)
    fg.register_residual("odom", odom_residual)
    fg.register_residual("range", range_residual)

    # -------------------------
    # Anchors
    # -------------------------
    anchor0 = fg.new_variable("point2", jnp.array([0.1, -0.1]))
    anchor1 = fg.new_variable("point2", jnp.array([3.9, 0.1]))
    anchor_model = Isotropic.from_sigma(2, 0.01)
    fg.new_factor("prior", (anchor0,), {"target": jnp.array([0.0, 0.0]), "noise_model": anchor_model})
    fg.new_factor("prior", (anchor1,), {"target": jnp.array([4.0, 0.0]), "noise_model": anchor_model})

    # -------------------------
    # Robot positions (initial guesses are intentionally noisy)
    # -------------------------
    pose0 = fg.new_variable("point2", jnp.array([0.8, 1.3]))
    pose1 = fg.new_variable("point2", jnp.array([2.2, 0.7]))
    pose2 = fg.new_variable("point2", jnp.array([3.1, 1.2]))
    poses = (pose0, pose1, pose2)

    odom_model = Diagonal.from_sigmas([0.05, 0.2])
    fg.new_factor("odom", (pose0, pose1), {"measurement": jnp.array([1.0, 0.0]), "noise_model": odom_model})
    fg.new_factor("odom", (pose1, pose2), {"measurement": jnp.array([1.0, 0.0]), "noise_model": odom_model})

    # -------------------------
    # Ranges (ground truth poses at y = 1)
    # -------------------------
    range_model = Isotropic.from_sigma(1, 0.1)
    for pid, x in zip(poses, (1.0, 2.0, 3.0)):
        for aid, ax in ((anchor0, 0.0), (anchor1, 4.0)):
            dist = float(jnp.sqrt((x - ax) ** 2 + 1.0))
            fg.new_factor("range", (aid, pid), {"range": dist, "noise_model": range_model})

    return fg, (anchor0, anchor1), poses


def print_state(values: Values, pose_ids, label: str):
    print(f"\n=== {label} ===")
    for i, pid in enumerate(pose_ids):
        x, y = [float(v) for v in values.at(pid)]
        print(f"pose{i}: ({x:.3f}, {y:.3f})")


def main():
    fg, anchor_ids, pose_ids = setup_range_world()

    x0 = fg.initial_values()
    print_state(x0, pose_ids, label="INITIAL STATE")

    x_opt = gauss_newton(fg, x0, GNConfig(max_iters=20))
    print_state(x_opt, pose_ids, label="OPTIMIZED STATE")

    marginals = Marginals(fg, x_opt)
    print("\n=== MARGINAL COVARIANCES ===")
    for i, pid in enumerate(pose_ids):
        print(f"pose{i}:\n{marginals.marginal_covariance(pid)}")

    # Neighboring poses are correlated through odometry
    joint = marginals.joint_marginal_covariance([pose_ids[0], pose_ids[1]])
    print(f"\ncov(pose0, pose1):\n{joint.at(pose_ids[0], pose_ids[1])}")

    joint = marginals.joint_marginal_covariance(list(pose_ids))
    print(f"\n{joint}")
    print(f"full joint covariance:\n{joint.full_matrix()}")


if __name__ == "__main__":
    main()
