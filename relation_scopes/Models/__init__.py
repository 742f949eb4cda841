from .BaseModel import BaseModel, Base

__all__ = ['Base', 'BaseModel']
