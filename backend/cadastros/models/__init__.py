from .consulta import Consulta, ConsultaEmpresa, ConsultaRealizada
from .empresa import Empresa, Endereco, DadosContato, Ocorrencias
from .societario import Socio, QuadroAdministrativo
from .credito import HistoricoPagamentoPositivo, ScoreCredito, Scr, TipoGarantia
from .client_registration import ClientRegistration, RegistrationStatus

__all__ = [
    "Consulta",
    "ConsultaEmpresa",
    "ConsultaRealizada",
    "Empresa",
    "Endereco",
    "DadosContato",
    "Ocorrencias",
    "Socio",
    "QuadroAdministrativo",
    "HistoricoPagamentoPositivo",
    "ScoreCredito",
    "Scr",
    "TipoGarantia",
    "ClientRegistration",
    "RegistrationStatus",
]
