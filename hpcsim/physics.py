"""
Physics

The physics engine that moves the ball and the player inside a box-shaped
workspace. The ball bounces elastically off the ground and walls; the player
is damped by friction instead of bouncing. Positions and velocities are
3-element numpy arrays ordered (x, y, z).
"""

import numpy as np


class PhysicsEngine:
    """
    Gravity, drag and workspace collisions

    Args:
        config (SimulationConfig): Supplies gravity, air_drag, restitution,
            ground_friction, player_damping and workspace_bounds
    """

    # Horizontal friction applied to the ball on each ground bounce
    BALL_BOUNCE_FRICTION = 0.995
    # Fraction of vertical player velocity kept on ground contact
    PLAYER_GROUND_DAMPING = 0.1
    # Fraction of player velocity kept on wall contact
    PLAYER_WALL_DAMPING = 0.5

    def __init__(self, config):
        self.gravity = config.gravity
        self.air_drag = config.air_drag
        self.restitution = config.restitution
        self.ground_friction = config.ground_friction
        self.player_damping = config.player_damping
        self.bounds = np.asarray(config.workspace_bounds, dtype=float)

    def integrate_ball(self, pos, vel, dt):
        """
        Advance the ball by one step

        The position moves with the current velocity, collisions are resolved,
        then gravity and air drag act on the velocity.

        Args:
            pos (array-like): Ball position
            vel (array-like): Ball velocity
            dt (float): Timestep

        Returns:
            tuple: (pos_new, vel_new) as numpy arrays
        """
        pos = np.asarray(pos, dtype=float) + np.asarray(vel, dtype=float) * dt
        vel = np.array(vel, dtype=float)

        pos, vel = self.handle_ball_collisions(pos, vel)

        vel[2] -= self.gravity * dt
        vel *= 1 - self.air_drag * dt
        return pos, vel

    def integrate_player(self, pos, vel, command, dt):
        """
        Advance the player by one step under a velocity command

        Args:
            pos (array-like): Player position
            vel (array-like): Player velocity
            command (array-like): Motor velocity command
            dt (float): Timestep

        Returns:
            tuple: (pos_new, vel_new) as numpy arrays
        """
        vel = self.player_damping * np.asarray(vel, dtype=float) + np.asarray(command, dtype=float)
        vel[2] -= self.gravity * dt
        vel *= 1 - self.air_drag * dt

        pos = np.asarray(pos, dtype=float) + vel * dt
        return self.handle_player_collisions(pos, vel)

    def handle_ball_collisions(self, pos, vel):
        pos = np.array(pos, dtype=float)
        vel = np.array(vel, dtype=float)

        # Ground: bounce only when moving downward
        if pos[2] <= 0:
            pos[2] = 0.0
            if vel[2] < 0:
                vel[2] = -vel[2] * self.restitution
                vel[:2] *= self.BALL_BOUNCE_FRICTION

        for axis in (0, 1):
            lo, hi = self.bounds[axis]
            if pos[axis] <= lo:
                pos[axis] = lo
                if vel[axis] < 0:
                    vel[axis] = -vel[axis] * self.restitution
            elif pos[axis] >= hi:
                pos[axis] = hi
                if vel[axis] > 0:
                    vel[axis] = -vel[axis] * self.restitution

        if pos[2] >= self.bounds[2, 1]:
            pos[2] = self.bounds[2, 1]
            if vel[2] > 0:
                vel[2] = -vel[2] * self.restitution

        return pos, vel

    def handle_player_collisions(self, pos, vel):
        pos = np.array(pos, dtype=float)
        vel = np.array(vel, dtype=float)

        if pos[2] <= 0:
            pos[2] = 0.0
            vel[2] *= self.PLAYER_GROUND_DAMPING
            vel[:2] *= self.ground_friction

        for axis in (0, 1):
            lo, hi = self.bounds[axis]
            if pos[axis] <= lo:
                pos[axis] = lo
                vel[axis] *= self.PLAYER_WALL_DAMPING
            elif pos[axis] >= hi:
                pos[axis] = hi
                vel[axis] *= self.PLAYER_WALL_DAMPING

        # The player cannot fly through the ceiling
        if pos[2] >= self.bounds[2, 1]:
            pos[2] = self.bounds[2, 1]
            vel[2] = 0.0

        return pos, vel

    def clamp_to_workspace(self, pos):
        return np.clip(np.asarray(pos, dtype=float), self.bounds[:, 0], self.bounds[:, 1])
