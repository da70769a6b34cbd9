from fastapi import APIRouter, Depends
from typing import List

from protoreg.dependencies import get_registry
from protoreg.schemas.api_schemas import LanguageInfo
from protoreg.services.codegen.registry import GeneratorRegistry

router = APIRouter()


@router.get("/languages", response_model=List[LanguageInfo])
def list_languages(registry: GeneratorRegistry = Depends(get_registry)):
    """
    List the enabled code generators.
    """
    return [
        LanguageInfo(
            id=spec.language.value,
            name=spec.name,
            plugin_version=spec.plugin_version,
            supports_grpc=spec.supports_grpc,
            package_manager=spec.package_manager,
            stable=spec.stable,
            description=spec.description,
        )
        for spec in registry.list_enabled()
    ]
