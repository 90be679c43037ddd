"""Pacote webapp modular para o proxy do Alertmanager -> DingTalk.

Este pacote contém:
- constants: variáveis de ambiente e valores padrão
- errors: hierarquia de exceções do proxy
- utils: helpers de formatação e referência atômica
- config: carga/validação da tabela de profiles (YAML)
- models: representação imutável do payload do Alertmanager
- template: compilação e renderização dos templates (Jinja2)
- services: dispatcher para o webhook do DingTalk
- controller: criação do Flask app e endpoints
"""
