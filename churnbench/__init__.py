from .env import Env as Env
from .env import load_env as load_env
from .workers import WorkerPool as WorkerPool
