from rich.pretty import pretty_repr
import os
import csv
from typing import Dict, Any
import threading
import time
import logging
from rich.logging import RichHandler
from omegaconf import OmegaConf, DictConfig

class Logger:
    '''
    Handles console logging and storage of per-frame metrics.
    1. Logs to console.
    2. Saves console logs to file.
    3. Buffers metrics and writes them to csv from a background thread.
    '''
    # Class variables
    logger = None
    log_dir = './'
    write_every = 5
    metric_buffer = {}
    _running = False
    _log_thread = None
    _file_handler = None
    _metrics_lock = threading.Lock()
    _files_lock = threading.Lock()
    
    @classmethod
    def __init__(cls):
        console_handler = RichHandler(
            level=logging.DEBUG,
            rich_tracebacks=True,
            show_time=True,
            show_level=True,
            show_path=True,
            markup=False,
            log_time_format="%H:%M:%S"
        )
        cls.logger = logging.getLogger('pftrack')
        cls.logger.setLevel(logging.DEBUG)
        cls.logger.addHandler(console_handler)
        cls.logger.propagate = False 

    @classmethod
    def start(cls, log_dir='./', write_every=5):
        '''
        Creates the log dir., sets up metric and console file logging.
        '''
        cls.log_dir = log_dir
        os.makedirs(cls.log_dir, exist_ok=True)

        cls.write_every = write_every
        cls.metric_buffer: Dict[str, Any] = {}

        # start metric thread
        cls._running = True
        cls._log_thread = threading.Thread(target=cls._writer_thread, daemon=True)
        cls._log_thread.start()

        # save console logs to file
        cls._file_handler = logging.FileHandler(
            filename=os.path.join(log_dir, "console.log"),
            mode="a"
        )
        cls._file_handler.setLevel(logging.INFO)
        cls._file_handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s [%(filename)s:%(lineno)d] %(levelname)s %(message)s",
            datefmt="%H:%M:%S"
        ))
        cls.logger.addHandler(cls._file_handler)
        cls.info(f'Logging to {log_dir}.')

    @classmethod
    def format_msg(cls, args):
        formatted_args = []
        for arg in args:
            match arg:
                case DictConfig():
                    dict_arg = OmegaConf.to_container(arg, resolve=True)
                    formatted_args.append(pretty_repr(dict_arg))
                case dict():
                    formatted_args.append(pretty_repr(arg))
                case _:
                    formatted_args.append(str(arg))
        return "\n".join(formatted_args)
    
    @classmethod
    def debug(cls, *args, stacklevel=2, **kwargs): 
        cls.logger.debug(cls.format_msg(args), stacklevel=stacklevel, **kwargs)
        return cls
    
    @classmethod
    def info(cls, *args, stacklevel=2, **kwargs): 
        cls.logger.info(cls.format_msg(args), stacklevel=stacklevel, **kwargs)
        return cls

    @classmethod
    def warning(cls, *args, stacklevel=2, **kwargs): 
        cls.logger.warning(cls.format_msg(args), stacklevel=stacklevel, **kwargs)
        return cls
    
    @classmethod
    def error(cls, *args, stacklevel=2, **kwargs): 
        cls.logger.error(cls.format_msg(args), stacklevel=stacklevel, **kwargs)
        return cls
    
    @classmethod
    def critical(cls, *args, stacklevel=2, **kwargs): 
        cls.logger.critical(cls.format_msg(args), stacklevel=stacklevel, **kwargs)
        return cls
    
    # metric logging
    @classmethod
    def log_metrics(cls, metrics: Dict[str, Any]):
        # nothing is buffered until start() is called
        if not cls._running: return cls
        with cls._metrics_lock:
            for name, value in metrics.items():
                if value is None: continue
                if name not in cls.metric_buffer:
                    cls.metric_buffer[name] = []
                cls.metric_buffer[name].append(value)
        return cls
    
    @classmethod
    def _flush(cls):
        with cls._metrics_lock:
            items_to_write = list(cls.metric_buffer.items())
            cls.metric_buffer.clear()
        for name, values in items_to_write:
            cls._write_metric(name, values)

    @classmethod
    def _writer_thread(cls):
        while cls._running:
            time.sleep(cls.write_every)
            cls._flush()

    @classmethod
    def _write_metric(cls, name: str, values: list):
        with cls._files_lock:
            path = os.path.join(cls.log_dir, f'metrics/{name}.csv')
            dir = os.path.dirname(path)
            if not os.path.exists(dir): os.makedirs(dir)
            with open(path, 'a', newline='') as file:
                writer = csv.writer(file)
                for value in values: 
                    if isinstance(value, (list, tuple)):
                        writer.writerow(value) 
                    else:
                        writer.writerow([value])

    @classmethod
    def stop(cls) -> None:
        '''Stops the metric writer thread and flushes whatever is left.'''
        if cls._running:
            cls._running = False
            if cls._log_thread:
                cls._log_thread.join()
            cls._flush()
        if cls._file_handler is not None:
            cls.logger.removeHandler(cls._file_handler)
            cls._file_handler.close()
            cls._file_handler = None

Logger.__init__()
