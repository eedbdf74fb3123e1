"""
全局异常处理器
"""

import logging

from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import BusinessException

logger = logging.getLogger(__name__)

__all__ = [
    "BusinessException",
    "business_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "database_exception_handler",
    "general_exception_handler",
]


async def business_exception_handler(request: Request, exc: BusinessException):
    """业务异常，按异常自带的状态码返回"""
    logger.warning(f"业务异常 - URL: {request.url.path}, code: {exc.error_code}, message: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict())
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败"""
    logger.error(f"验证错误 - URL: {request.url.path}")
    logger.error(f"验证错误详情: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error_code": "VALIDATION_ERROR",
            "message": "请求参数校验失败",
            "retryable": False,
            "details": {"errors": jsonable_encoder(exc.errors())}
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error_code": f"HTTP_{exc.status_code}",
            "message": str(exc.detail),
            "retryable": False,
            "details": {}
        }
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """未被业务层处理的数据库异常"""
    logger.error(f"数据库异常 - URL: {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error_code": "DATABASE_ERROR",
            "message": "数据库操作失败",
            "retryable": False,
            "details": {}
        }
    )


async def general_exception_handler(request: Request, exc: Exception):
    """未捕获的服务器错误"""
    logger.error(f"未处理的服务器错误 - URL: {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error_code": "INTERNAL_SERVER_ERROR",
            "message": "服务器内部错误",
            "retryable": False,
            "details": {}
        }
    )
