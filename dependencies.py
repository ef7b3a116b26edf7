"""Accessors for the services built once in ``main.create_app``."""

from fastapi import Request

from config import Settings
from notifications import NotificationService
from pdf_generator import PDFGenerator
from uploads import ImageStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_images(request: Request) -> ImageStore:
    return request.app.state.images


def get_pdfs(request: Request) -> PDFGenerator:
    return request.app.state.pdfs


def get_notifier(request: Request) -> NotificationService:
    return request.app.state.notifier
