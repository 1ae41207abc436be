"""
Pydantic schemas for API request/response validation.

This package contains schema definitions for the flow endpoints.
"""

# Re-export schemas for convenient imports.
from .flow import CompiledFlowResponse as CompiledFlowResponse
from .flow import FlowCreatedResponse as FlowCreatedResponse
from .flow import FlowDocumentResponse as FlowDocumentResponse
from .flow import FlowGraph as FlowGraph
from .flow import FlowSaveRequest as FlowSaveRequest
from .flow import FlowValidationResponse as FlowValidationResponse
