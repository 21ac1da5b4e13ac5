"""MPI worker scripts launched by ``Laplace.runner``."""
