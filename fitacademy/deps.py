from pymongo.database import Database
from pymongo import MongoClient
import redis.asyncio as aioredis
from fastapi import Request
from redis.asyncio import Redis

from fitacademy.clients.backend import BackendClient
from fitacademy.services.certificate_service import CertificateTracker


def create_mongo_client(uri: str) -> MongoClient:
    # synchronous PyMongo client (use run_in_threadpool for blocking calls)
    return MongoClient(uri, maxPoolSize=50, serverSelectionTimeoutMS=5000)

def create_redis_client(url: str):
    # redis.asyncio client (async)
    return aioredis.from_url(url, encoding="utf-8", decode_responses=True)

def create_backend_client(base_url: str, timeout: float) -> BackendClient:
    return BackendClient(base_url, timeout=timeout)

def get_db(request: Request) -> Database:
    return request.app.state.db

def get_redis(request: Request) -> Redis:
    return request.app.state.redis

def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend

def get_certificates(request: Request) -> CertificateTracker:
    return request.app.state.certificates
