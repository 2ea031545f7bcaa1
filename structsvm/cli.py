#!filepath: structsvm/cli.py
from pathlib import Path
from typing import Optional

import typer
from rich import print

from structsvm import __version__
from structsvm.config.app_config import AppConfig
from structsvm.data.dataset import InMemoryDataset
from structsvm.training.evaluation import evaluate, resolve_metric
from structsvm.training.one_vs_rest import OneVsRestModel, OneVsRestTrainer
from structsvm.training.registry import load_model, train_model
from structsvm.utils.logger import init_logging

app = typer.Typer(help="structsvm online structured SVM CLI")


@app.command()
def version():
    print(f"v{__version__}")


@app.command()
def train(
    config: Optional[str] = typer.Option(None, "--config", help="YAML config (default: base.yml)"),
    data: str = typer.Option(..., "--data", help="training set, svmlight format"),
    dev: Optional[str] = typer.Option(None, "--dev", help="dev set for evaluation"),
    out: str = typer.Option(..., "--out", help="checkpoint path (a directory with --one-vs-rest)"),
    one_vs_rest: bool = typer.Option(
        False, "--one-vs-rest", help="one binary model per label, trained on the worker pool"
    ),
):
    """
    训练一个模型并写出 checkpoint
    """
    cfg = AppConfig.load(config)
    init_logging(cfg.log)

    train_set = InMemoryDataset.from_svmlight(data)
    dev_set = (
        InMemoryDataset.from_svmlight(dev, num_features=train_set.feature_vocabulary_size())
        if dev
        else None
    )

    print(f"[green]Training {cfg.training.variant} on {data} ({len(train_set)} examples)[/green]")
    if one_vs_rest:
        trainer = OneVsRestTrainer(cfg.training, max_workers=cfg.parallel.max_workers)
        result = trainer.train(train_set, dev=dev_set)
    else:
        result = train_model(cfg.training, train_set, dev=dev_set)

    if not result.ok:
        print(f"[red]Training failed: state={result.state.value} error={result.error}[/red]")
        raise typer.Exit(code=1)

    path = result.model.save(out)
    print(f"[blue]state={result.state.value} epochs={result.iterations} objective={result.objective:.6f}[/blue]")
    for name, value in result.metrics.items():
        print(f"  {name} = {value:.4f}")
    print(f"[green]Saved checkpoint -> {path}[/green]")


@app.command()
def predict(
    checkpoint: str = typer.Option(..., "--checkpoint", help="checkpoint written by `train`"),
    data: str = typer.Option(..., "--data", help="examples to label, svmlight format"),
):
    """
    用 checkpoint 给数据打标签，输出 accuracy 与逐条预测
    """
    # train --one-vs-rest writes a directory
    if Path(checkpoint).is_dir():
        model = OneVsRestModel.load(checkpoint)
    else:
        model = load_model(checkpoint)
    dataset = InMemoryDataset.from_svmlight(data)

    predictions = model.classify(dataset)
    scores = evaluate(dataset, predictions, [resolve_metric("accuracy")], model.map_valid_label)
    if scores:
        print(f"[blue]accuracy = {scores['accuracy']:.4f}[/blue]")

    for ex in dataset:
        print(f"{ex.id}\t{ex.label}\t{predictions[ex.id]}")


if __name__ == "__main__":
    app()

# python -m structsvm.cli train --data train.svm --out model.ckpt
