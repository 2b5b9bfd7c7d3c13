"""
Cliente de integração com o ERP Atak.

Autenticação por token (mantido em memória). Qualquer resposta 401 ou com
assinatura de token inválido dispara um novo login e a mesma chamada é
repetida uma única vez.
"""
import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from cadastros.core.config import Settings, settings as default_settings
from cadastros.core.exceptions import AuthError, ConfigError, TransportError, ValidationError
from cadastros.schemas.registro import RegistroConsolidado
from cadastros.schemas.stage import StageResult
from cadastros.services.atak_constants import (
    ASSINATURAS_TOKEN_INVALIDO,
    MENSAGEM_JA_CADASTRADO,
    PAPEIS_ENDERECO,
    SERVICO,
    TIPOS_DE_CADASTRO,
)
from cadastros.services.external_fetcher import ExternalFetcher, RetryPolicy, raise_for_status
from cadastros.services.ibge_service import IbgeService
from cadastros.utils.cnpj import normalizar_cnpj
from cadastros.utils.coercion import somente_digitos

logger = logging.getLogger(__name__)

EXCEPTION_MESSAGE_REGEX = re.compile(r"~EXCEPTION_MESSAGE\([^)]+\)\s*([^~]+)")


def mapear_situacao(situacao: Optional[str]) -> str:
    """Situação cadastral -> código do Atak (A ativo, B bloqueado, I inativo)"""
    if not situacao:
        return "A"
    valor = situacao.strip().upper()
    if valor in ("A", "B", "I"):
        return valor
    if ("ATIVA" in valor and "INATIVA" not in valor) or "APROVADO" in valor:
        return "A"
    if "SUSPENSA" in valor or "BLOQUEADO" in valor:
        return "B"
    if "BAIXADA" in valor or "CANCELADA" in valor or "INATIV" in valor:
        return "I"
    return "A"


def indicador_micro_empresa(porte: Optional[str]) -> str:
    if not porte:
        return "N"
    valor = porte.upper()
    return "S" if "MICRO" in valor or "PEQUENO" in valor else "N"


def extrair_mensagem_erro(corpo: Any) -> str:
    """Mensagem legível de uma resposta de erro do Atak"""
    if isinstance(corpo, dict):
        mensagem = corpo.get("Content") or corpo.get("Erro") or corpo.get("ReasonPhrase")
        if mensagem:
            return extrair_mensagem_erro(mensagem) if isinstance(mensagem, str) else json.dumps(mensagem, ensure_ascii=False)
        return json.dumps(corpo, ensure_ascii=False)[:500]

    texto = str(corpo or "")
    match = EXCEPTION_MESSAGE_REGEX.search(texto)
    if match:
        return match.group(1).strip()
    return texto.strip()


def _id_cliente(dados: Any) -> Optional[int]:
    """ID do cadastro em respostas de busca (objeto ou lista) e de criação"""
    if isinstance(dados, list):
        for item in dados:
            encontrado = _id_cliente(item)
            if encontrado:
                return encontrado
        return None
    if isinstance(dados, dict):
        for chave in ("ID", "Id", "id"):
            if dados.get(chave):
                try:
                    return int(dados[chave])
                except (TypeError, ValueError):
                    return None
        conteudo = dados.get("Content")
        if isinstance(conteudo, (dict, list)):
            return _id_cliente(conteudo)
        if isinstance(conteudo, str) and conteudo.strip().isdigit():
            return int(conteudo.strip())
    return None


class AtakClient:
    """Cliente REST do Atak"""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        ibge: Optional[IbgeService] = None,
        sleep=asyncio.sleep,
    ):
        self.config = config or default_settings
        self.base_url = (self.config.ATAK_BASE_URL or "").rstrip("/")
        self.token: Optional[str] = self.config.ATAK_TOKEN or None
        self.ibge = ibge or IbgeService(self.config.IBGE_DIR)
        self._transport = transport
        # cadastro não é idempotente: uma tentativa por chamada
        self.fetcher = ExternalFetcher("ATAK", RetryPolicy(max_attempts=1), sleep=sleep)
        self.fetcher_leitura = ExternalFetcher("ATAK", RetryPolicy(), sleep=sleep)

    @property
    def configurado(self) -> bool:
        return self.config.atak_configured

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=60.0, transport=self._transport)

    # ------------------------------------------------------------------
    # Autenticação
    # ------------------------------------------------------------------

    async def autenticar(self) -> str:
        """Faz login e guarda o token em memória"""
        if not self.configurado:
            raise ConfigError(
                "Configurações do Atak não encontradas. Verifique ATAK_USERNAME, ATAK_PASSWORD e ATAK_BASE_URL",
                "ATAK",
            )

        logger.info("[ATAK] Autenticando no Atak")
        async with self._client() as client:
            response = await client.post(
                "/auth-integracao.axd",
                json={
                    "usuario": self.config.ATAK_USERNAME,
                    "senha": self.config.ATAK_PASSWORD,
                    "idDispositivo": None,
                    "idAplicativo": 0,
                },
            )
        raise_for_status(response, "ATAK")

        try:
            corpo = response.json()
        except ValueError:
            corpo = response.text
        token = corpo.strip().strip('"') if isinstance(corpo, str) else None
        if not token:
            raise AuthError("Token não encontrado na resposta de autenticação do Atak", "ATAK")

        self.token = token
        logger.info("[ATAK] Token obtido")
        return token

    @staticmethod
    def _token_invalido(response: httpx.Response) -> bool:
        if response.status_code == 401:
            return True
        corpo = response.text or ""
        return any(assinatura in corpo for assinatura in ASSINATURAS_TOKEN_INVALIDO)

    async def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """
        Envia a requisição autenticada.
        Token inválido gera um único novo login seguido de uma única repetição.
        """
        if not self.token:
            await self.autenticar()

        reautenticou = False
        while True:
            async with self._client() as client:
                response = await client.request(
                    method,
                    path,
                    json=json_body,
                    headers={"Authorization": f"Bearer {self.token}"},
                )

            if not self._token_invalido(response):
                return response

            if reautenticou:
                raise AuthError(f"Token do Atak rejeitado após reautenticação: {extrair_mensagem_erro(response.text)}", "ATAK")

            logger.warning("[ATAK] Token inválido detectado. Reautenticando...")
            await self.autenticar()
            reautenticou = True

    @staticmethod
    def _corpo(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    async def buscar_cliente(self, cnpj: str) -> Optional[Dict[str, Any]]:
        """
        Procura o CNPJ em cada tipo de cadastro, na ordem, até o primeiro acerto.

        Returns:
            {"id", "tipo", "dados"} ou None se não cadastrado
        """
        cnpj_limpo = normalizar_cnpj(cnpj)
        for tipo in TIPOS_DE_CADASTRO:
            try:
                response = await self._request("GET", f"{SERVICO}/ObterCadastrosGerais/{tipo}/{cnpj_limpo}")
            except (httpx.HTTPError, TransportError) as e:
                logger.warning(f"[ATAK] Erro ao buscar {cnpj_limpo} no tipo {tipo}: {e}")
                continue

            if response.status_code != 200:
                logger.debug(f"[ATAK] Tipo {tipo}: status {response.status_code}")
                continue

            dados = self._corpo(response)
            cliente_id = _id_cliente(dados) if isinstance(dados, (dict, list)) else None
            if cliente_id:
                logger.info(f"[ATAK] CNPJ {cnpj_limpo} encontrado no tipo {tipo} ({TIPOS_DE_CADASTRO[tipo]}), ID {cliente_id}")
                return {"id": cliente_id, "tipo": tipo, "dados": dados}

        logger.info(f"[ATAK] CNPJ {cnpj_limpo} não cadastrado no Atak")
        return None

    async def _obter_por_id(self, cliente_id: int) -> Any:
        response = await self._request("GET", f"{SERVICO}/ObterCadastroGeralPorId/{cliente_id}")
        raise_for_status(response, "ATAK", not_found_message=f"Cliente {cliente_id} não encontrado no Atak")
        return self._corpo(response)

    async def obter_cliente(self, cliente_id: int) -> StageResult:
        return await self.fetcher_leitura.call(
            lambda: self._obter_por_id(cliente_id), f"GET ObterCadastroGeralPorId/{cliente_id}"
        )

    # ------------------------------------------------------------------
    # Cadastro
    # ------------------------------------------------------------------

    def montar_payload(self, registro: RegistroConsolidado) -> Dict[str, Any]:
        """Payload de CadastroGeral a partir do registro consolidado"""
        cnpj = normalizar_cnpj(registro.cnpj)
        endereco = registro.endereco
        razao_social = registro.razao_social or registro.nome_fantasia or ""
        telefone = somente_digitos(registro.telefones[0]) if registro.telefones else ""
        email = registro.emails[0] if registro.emails else ""
        cep = somente_digitos(endereco.cep)
        uf = (endereco.estado or "").upper()

        codigo_ibge = None
        if endereco.cidade and uf:
            codigo_ibge = self.ibge.buscar_codigo(endereco.cidade, uf)

        ramo = (self.config.ATAK_CODIGO_RAMO_ATIVIDADE or "037").strip().zfill(3)

        enderecos: Dict[str, Any] = {
            "IdDoPaisF": "BR",
            "ObservacaoF": endereco.complemento or "",
            "LatitudeF": str(endereco.latitude) if endereco.latitude is not None else None,
            "LongitudeF": str(endereco.longitude) if endereco.longitude is not None else None,
        }
        for papel in PAPEIS_ENDERECO:
            enderecos.update({
                f"UF{papel}": uf,
                f"ConteudoEndereco{papel}": endereco.logradouro,
                f"Bairro{papel}": endereco.bairro,
                f"CodigoIBGECidade{papel}": codigo_ibge,
                f"Cidade{papel}": endereco.cidade,
                f"Telefone{papel}": telefone,
                f"Email{papel}": email,
                f"CEP{papel}": cep,
                f"Numero{papel}": endereco.numero,
            })

        return {
            "UtilizaSequenciaDaAtak": True,
            "tipoDeCadastro": self.config.ATAK_TIPO_CADASTRO or "G",
            "CodigoDaFilial": self.config.ATAK_CODIGO_FILIAL or "001",
            "RazaoSocial": razao_social,
            "nomeFantasia": registro.nome_fantasia or razao_social,
            "tipoDePessoa": "J" if len(cnpj) == 14 else "F",
            "cpfCnpj": cnpj,
            "identificadorEstadual": 1 if (registro.inscricao_estadual or "").strip() else 9,
            "observacao": "",
            "codigoDaSituacao": mapear_situacao(registro.situacao),
            "codigoDoRamoDaAtividade": ramo,
            "codigoDoPercursoDaRotaDeEntrega": self.config.ATAK_CODIGO_PERCURSO_ROTA or "",
            "uf": uf,
            "indicadorMicroEmpresa": indicador_micro_empresa(registro.porte),
            "suframa": registro.inscricao_suframa or "",
            "Enderecos": {chave: valor for chave, valor in enderecos.items() if valor is not None},
            "Financeiro": {
                "CodigoDaListaDePreco": self.config.ATAK_CODIGO_LISTA_PRECO,
                "CodigoDaCarteira": self.config.ATAK_CODIGO_CARTEIRA,
                "CodigoFormaDeCobranca": self.config.ATAK_CODIGO_FORMA_COBRANCA,
                "CodigoDoVendedor": self.config.ATAK_CODIGO_VENDEDOR,
            },
        }

    @staticmethod
    def _verificar_resposta(response: httpx.Response, operacao: str) -> Any:
        corpo = AtakClient._corpo(response)
        if response.status_code != 200:
            if response.status_code >= 500:
                raise TransportError(
                    f"Erro ao {operacao} no Atak: {extrair_mensagem_erro(corpo)}", "ATAK", status_code=response.status_code
                )
            raise ValidationError(f"Erro ao {operacao} no Atak: {extrair_mensagem_erro(corpo)}", "ATAK")
        if isinstance(corpo, dict) and corpo.get("IsSuccessStatusCode") is False:
            raise ValidationError(f"Erro ao {operacao} no Atak: {extrair_mensagem_erro(corpo)}", "ATAK")
        return corpo

    async def _registrar(self, registro: RegistroConsolidado) -> Dict[str, Any]:
        existente = await self.buscar_cliente(registro.cnpj)
        if existente:
            return {
                "cliente_id": existente["id"],
                "ja_cadastrado": True,
                "mensagem": MENSAGEM_JA_CADASTRADO,
                "resposta": existente["dados"],
            }

        payload = self.montar_payload(registro)
        logger.info(f"[ATAK] Cadastrando {registro.cnpj} ({payload['RazaoSocial']})")
        response = await self._request("POST", f"{SERVICO}/CadastroGeral", payload)
        corpo = self._verificar_resposta(response, "cadastrar empresa")

        cliente_id = _id_cliente(corpo) if isinstance(corpo, (dict, list)) else None
        if cliente_id is None and isinstance(corpo, str) and corpo.strip().isdigit():
            cliente_id = int(corpo.strip())
        logger.info(f"[ATAK] Empresa {registro.cnpj} cadastrada (ID {cliente_id})")
        return {
            "cliente_id": cliente_id,
            "ja_cadastrado": False,
            "mensagem": "Empresa cadastrada no Atak",
            "resposta": corpo,
        }

    async def registrar_empresa(self, registro: RegistroConsolidado) -> StageResult:
        """
        Cadastra a empresa no Atak se ainda não existir.

        Returns:
            StageResult com {cliente_id, ja_cadastrado, mensagem, resposta}
        """
        return await self.fetcher.call(lambda: self._registrar(registro), f"CadastroGeral {registro.cnpj}")

    async def _editar_financeiro(
        self,
        cliente_id: int,
        razao_social: str,
        nome_fantasia: Optional[str],
        condicao_pagamento: Optional[str],
        limite_credito: Optional[float],
        codigo_carteira: Optional[int],
        codigo_forma_cobranca: Optional[int],
    ) -> Any:
        payload: Dict[str, Any] = {
            "ID": cliente_id,
            "RazaoSocial": razao_social or nome_fantasia or "",
            "NomeFantasia": nome_fantasia or razao_social or "",
            "Nome": razao_social or nome_fantasia or "",
            "CodigoDaCarteira": codigo_carteira or self.config.ATAK_CODIGO_CARTEIRA,
            "CodFormaDeCobranca": codigo_forma_cobranca or self.config.ATAK_CODIGO_FORMA_COBRANCA,
            "CodLista": self.config.ATAK_CODIGO_LISTA_PRECO,
        }
        if condicao_pagamento:
            payload["CodCondicaoPagamento"] = condicao_pagamento
        if limite_credito is not None:
            payload["LimiteCredito"] = limite_credito

        response = await self._request("PUT", f"{SERVICO}/EditarCadastroGeral", payload)
        return self._verificar_resposta(response, "atualizar dados financeiros")

    async def atualizar_dados_financeiros(
        self,
        cliente_id: int,
        razao_social: str,
        nome_fantasia: Optional[str] = None,
        condicao_pagamento: Optional[str] = None,
        limite_credito: Optional[float] = None,
        codigo_carteira: Optional[int] = None,
        codigo_forma_cobranca: Optional[int] = None,
    ) -> StageResult:
        """Edita carteira, forma de cobrança, condição de pagamento e limite de crédito"""
        if not cliente_id:
            return StageResult.fail("ID do cliente no Atak não informado", attempts=0)

        logger.info(f"[ATAK] Atualizando dados financeiros do cliente {cliente_id}")
        return await self.fetcher.call(
            lambda: self._editar_financeiro(
                cliente_id, razao_social, nome_fantasia, condicao_pagamento,
                limite_credito, codigo_carteira, codigo_forma_cobranca,
            ),
            f"EditarCadastroGeral {cliente_id}",
        )
