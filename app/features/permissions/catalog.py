"""
Static catalog of menus, screens and fields shown in the permission editor.

Add new screens and fields here so they appear in permission management.
"""
from typing import Dict, List

from app.features.permissions.schemas import CatalogMenu, CatalogScreen, FieldAccess, PermissionSet


SYSTEM_MENU_ITEMS: List[Dict[str, str]] = [
    {"id": "dashboard", "label": "DASHBOARD"},
    {"id": "socios", "label": "SÓCIOS"},
    {"id": "empresas", "label": "EMPRESAS"},
    {"id": "dependentes", "label": "DEPENDENTES"},
    {"id": "funcionarios", "label": "FUNCIONÁRIOS"},
    {"id": "contas-pagar", "label": "CONTAS A PAGAR"},
    {"id": "contas-receber", "label": "CONTAS A RECEBER"},
    {"id": "usuarios", "label": "USUÁRIOS"},
    {"id": "permissoes", "label": "PERMISSÕES"},
    {"id": "relatorios", "label": "RELATÓRIOS"},
]

SYSTEM_SCREENS: List[Dict] = [
    {
        "id": "socios",
        "label": "CADASTRO DE SÓCIOS",
        "fields": [
            {"id": "matricula", "label": "MATRÍCULA"},
            {"id": "nome", "label": "NOME COMPLETO"},
            {"id": "cpf", "label": "CPF"},
            {"id": "rg", "label": "RG"},
            {"id": "status", "label": "STATUS"},
            {"id": "empresa", "label": "EMPRESA"},
            {"id": "setor", "label": "SETOR"},
            {"id": "dataAdmissao", "label": "DATA ADMISSÃO"},
            {"id": "nascimento", "label": "NASCIMENTO"},
            {"id": "telefone", "label": "TELEFONE"},
            {"id": "celular", "label": "CELULAR"},
            {"id": "cep", "label": "CEP"},
            {"id": "cidade", "label": "CIDADE"},
            {"id": "uf", "label": "UF"},
            {"id": "email", "label": "EMAIL"},
            {"id": "redeSocial", "label": "REDE SOCIAL"},
            {"id": "linkRedeSocial", "label": "LINK REDE SOCIAL"},
            {"id": "funcao", "label": "FUNÇÃO"},
        ],
    },
    {
        "id": "empresas",
        "label": "CADASTRO DE EMPRESAS",
        "fields": [
            {"id": "codEmpresa", "label": "CÓDIGO"},
            {"id": "razaoSocial", "label": "RAZÃO SOCIAL"},
            {"id": "nomeFantasia", "label": "NOME FANTASIA"},
            {"id": "cnpj", "label": "CNPJ"},
            {"id": "cidade", "label": "CIDADE"},
            {"id": "uf", "label": "UF"},
            {"id": "nFuncionarios", "label": "Nº FUNCIONÁRIOS"},
        ],
    },
    {
        "id": "funcionarios",
        "label": "CADASTRO DE FUNCIONÁRIOS",
        "fields": [
            {"id": "nome", "label": "NOME"},
            {"id": "cpf", "label": "CPF"},
            {"id": "cargo", "label": "CARGO"},
            {"id": "cbo", "label": "CBO"},
            {"id": "empresaLocal", "label": "EMPRESA/LOCAL"},
            {"id": "depto", "label": "DEPARTAMENTO"},
        ],
    },
    {
        "id": "dependentes",
        "label": "CADASTRO DE DEPENDENTES",
        "fields": [
            {"id": "nome", "label": "NOME"},
            {"id": "parentesco", "label": "PARENTESCO"},
            {"id": "nascimento", "label": "NASCIMENTO"},
            {"id": "socio", "label": "SÓCIO TITULAR"},
        ],
    },
    {
        "id": "usuarios",
        "label": "CADASTRO DE USUÁRIOS",
        "fields": [
            {"id": "nome", "label": "NOME"},
            {"id": "cpf", "label": "CPF"},
            {"id": "funcao", "label": "FUNÇÃO"},
            {"id": "email", "label": "EMAIL"},
            {"id": "usuario", "label": "USUÁRIO (LOGIN)"},
            {"id": "perfil", "label": "PERFIL"},
        ],
    },
    {
        "id": "financeiro",
        "label": "FINANCEIRO (CONTAS)",
        "fields": [
            {"id": "valor", "label": "VALOR"},
            {"id": "data_vencimento", "label": "DATA VENCIMENTO"},
            {"id": "categoria", "label": "CATEGORIA"},
            {"id": "status", "label": "STATUS"},
            {"id": "centro_custo", "label": "CENTRO DE CUSTO"},
        ],
    },
]

# Menus whose screens do not share the menu id
MENU_SCREENS: Dict[str, List[str]] = {
    "contas-pagar": ["financeiro"],
    "contas-receber": ["financeiro"],
}


def list_screens() -> List[CatalogScreen]:
    return [CatalogScreen.model_validate(screen) for screen in SYSTEM_SCREENS]


def screens_for_menu(menu_id: str) -> List[str]:
    """Screens whose fields are gated by a menu."""
    if menu_id in MENU_SCREENS:
        return list(MENU_SCREENS[menu_id])
    return [screen["id"] for screen in SYSTEM_SCREENS if screen["id"] == menu_id]


def list_menus() -> List[CatalogMenu]:
    return [
        CatalogMenu(id=item["id"], label=item["label"], screens=screens_for_menu(item["id"]))
        for item in SYSTEM_MENU_ITEMS
    ]


def full_access_set() -> PermissionSet:
    """Every catalog menu allowed and every catalog field viewable and editable."""
    return PermissionSet(
        menus={item["id"]: True for item in SYSTEM_MENU_ITEMS},
        fields={
            screen["id"]: {field["id"]: FieldAccess(view=True, edit=True) for field in screen["fields"]}
            for screen in SYSTEM_SCREENS
        },
    )


def toggle_menu(permissions: PermissionSet, menu_id: str, allowed: bool) -> PermissionSet:
    """
    Return a copy of permissions with menu_id set to allowed and every field
    of the screens it gates set to view=edit=allowed.
    """
    updated = permissions.model_copy(deep=True)
    updated.menus[menu_id] = allowed

    for screen_id in screens_for_menu(menu_id):
        screen = next((s for s in SYSTEM_SCREENS if s["id"] == screen_id), None)
        if screen is None:
            continue
        updated.fields[screen_id] = {
            field["id"]: FieldAccess(view=allowed, edit=allowed) for field in screen["fields"]
        }

    return updated
